# ======================================
# Configuration
# ======================================

import os

basedir = os.path.abspath(os.path.dirname(__file__))
db_path = os.path.join(basedir, 'instance', 'hms.db')


class Config:
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', f'sqlite:///{db_path}')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bounded process-wide pool: 20 connections, fail fast when exhausted
    DB_POOL_SIZE = int(os.environ.get('DB_POOL_SIZE', 20))
    DB_POOL_TIMEOUT = float(os.environ.get('DB_POOL_TIMEOUT', 2))
    DB_POOL_RECYCLE = int(os.environ.get('DB_POOL_RECYCLE', 30))
    SQLITE_BUSY_TIMEOUT = int(os.environ.get('SQLITE_BUSY_TIMEOUT', 5000))

    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


def engine_options(config):
    """SQLAlchemy engine options derived from the pool settings."""
    options = {
        'pool_size': config['DB_POOL_SIZE'],
        'max_overflow': 0,
        'pool_timeout': config['DB_POOL_TIMEOUT'],
        'pool_recycle': config['DB_POOL_RECYCLE'],
        'pool_pre_ping': True,
    }
    if config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite'):
        # Pooled connections are handed to whichever request thread asks next
        options['connect_args'] = {'check_same_thread': False}
    return options


def logging_config(level):
    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'default': {
                'format': '[%(asctime)s] %(levelname)s in %(name)s: %(message)s',
            },
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': 'default',
            },
        },
        'root': {
            'level': level,
            'handlers': ['console'],
        },
    }
