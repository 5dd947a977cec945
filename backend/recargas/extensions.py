# Overview: Extension singletons bound to the app in create_app().
# Models import `db` from here; `flask db upgrade` uses `migrate`.

from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
migrate = Migrate()
