from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from common.settings import Settings

def build_engine(database_url: str, settings: Settings) -> Engine:
    kwargs = {"pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_size"] = settings.db_pool_size
        kwargs["pool_recycle"] = settings.db_pool_recycle_seconds
    try:
        return create_engine(database_url, **kwargs)
    except ModuleNotFoundError as e:
        # mysql+mysqldb:// needs the optional `mysql` extra (mysqlclient)
        raise RuntimeError(
            f"Database driver '{e.name}' is not installed; "
            "install the driver for this URL (pip install 'techmart-payment-service[mysql]' for MySQL)"
        ) from e

def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)
