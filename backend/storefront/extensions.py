# Overview: Flask extension instances for database and migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()


CLIENTS_KEY = "storefront_clients"


def get_client(name: str):
    """Return the adapter registered by create_app() (pos, chip, bizappay, shipping)."""
    from flask import current_app
    return current_app.extensions[CLIENTS_KEY][name]
