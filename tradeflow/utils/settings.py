"""Read configuration whether or not a Flask app context is active."""
from flask import current_app, has_app_context


def get_setting(key, default=None):
    """App config value when inside an app context, else the Config class default."""
    if has_app_context():
        return current_app.config.get(key, default)
    from config import Config
    return getattr(Config, key, default)
