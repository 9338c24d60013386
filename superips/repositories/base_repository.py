import logging
from typing import Any, Callable, Dict, Generic, List, NamedTuple, Optional, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from superips.db import db

T = TypeVar('T')
R = TypeVar('R')

logger = logging.getLogger(__name__)


class QueryResult(NamedTuple):
    rows: List[Dict[str, Any]]
    rowcount: int


RESULTADO_VAZIO = QueryResult([], 0)


class BaseRepository(Generic[T]):
    """
    Gateway de persistência. Nenhum método propaga erro de banco: falhas são
    registradas no log e viram um resultado vazio para quem chamou.
    """

    def __init__(self, model_class):
        self.model_class = model_class
        self.db = db

    def execute(self, query: str, args: Optional[Dict[str, Any]] = None) -> QueryResult:
        """Executa uma query parametrizada (estilo :nome) e faz commit."""
        try:
            result = self.db.session.execute(text(query), args or {})
            if result.returns_rows:
                rows = [dict(row._mapping) for row in result]
                rowcount = len(rows)
            else:
                rows = []
                rowcount = result.rowcount
            self.db.session.commit()
            return QueryResult(rows, rowcount)
        except SQLAlchemyError as e:
            self.db.session.rollback()
            logger.error(f"Erro executando query {query!r} args={args}: {e}")
            return RESULTADO_VAZIO

    def _seguro(self, operacao: Callable[[], R], padrao: R, descricao: str) -> R:
        """Executa uma operação ORM contendo erros de banco."""
        try:
            return operacao()
        except SQLAlchemyError as e:
            self.db.session.rollback()
            logger.error(f"Erro de banco em {descricao} ({self.model_class.__tablename__}): {e}")
            return padrao

    def get_by_id(self, id: int) -> Optional[T]:
        """Busca por ID"""
        return self._seguro(
            lambda: self.db.session.get(self.model_class, id),
            None,
            "get_by_id",
        )

    def get_all(self) -> List[T]:
        """Retorna todos os registros"""
        return self._seguro(
            lambda: self.db.session.query(self.model_class).all(),
            [],
            "get_all",
        )
