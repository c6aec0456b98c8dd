import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configura el logging raíz de la aplicación (una sola vez por proceso)"""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    logging.getLogger("app").setLevel(level.upper())
    # El echo de SQLAlchemy ya se controla con settings.debug
    logging.getLogger("sqlalchemy.engine").propagate = True
