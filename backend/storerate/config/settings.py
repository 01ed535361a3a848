"""Environment-driven defaults. Values here are read once by create_app(); tests override via config dict."""
import os


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def load_settings():
    env = os.getenv('APP_ENV', os.getenv('FLASK_ENV', 'production')).lower()
    return {
        'APP_ENV': env,
        'JWT_SECRET_KEY': os.getenv('JWT_SECRET_KEY', 'dev-secret'),
        'DATABASE_URL': os.getenv('DATABASE_URL', 'sqlite:///dev.db'),
        'JWT_EXPIRES_HOURS': int(os.getenv('JWT_EXPIRES_HOURS', '24')),
        'AUDIT_ASYNC': _flag('AUDIT_ASYNC', True),
        'AUDIT_WORKERS': int(os.getenv('AUDIT_WORKERS', '2')),
        # Stack traces in error bodies only for local development
        'EXPOSE_ERROR_DETAIL': _flag('EXPOSE_ERROR_DETAIL', env == 'development'),
        'LOG_LEVEL': os.getenv('LOG_LEVEL', 'INFO'),
    }
