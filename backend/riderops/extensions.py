# Overview: Shared extension instances; bound to the app in create_app().

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Ledger, shift, report and verification tables all live on this one db.
db = SQLAlchemy()
migrate = Migrate(compare_type=True)
