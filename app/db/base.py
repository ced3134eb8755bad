# app/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models in the Recurring Scheduler service.

    Models register themselves on import; `app.db.session` imports them so
    that `Base.metadata` is complete before any schema operation.
    """
    pass
