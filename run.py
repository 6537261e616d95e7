"""
WSGI entry point for the montage CRM.

Development:

    flask --app run.py --debug run
    flask --app run.py seed-dictionaries
    flask --app run.py create-admin admin <haslo>

Production (config is picked by FLASK_ENV, see config.get_config):

    FLASK_ENV=production SECRET_KEY=... DATABASE_URL=... gunicorn run:app
"""

from app import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True)
