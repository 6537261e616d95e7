"""
Flask extension singletons for the montage CRM.

Bound to the application in create_app(); models, audit and blueprints import
them from here so nothing has to import the app package itself.
"""

from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()

login_manager = LoginManager()
login_manager.login_view = "auth.login"
login_manager.login_message = "Zaloguj się, aby kontynuować."
login_manager.login_message_category = "info"
