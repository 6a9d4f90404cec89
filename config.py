import os

class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "change-this-in-production")
    # Database configuration
    # Use DATABASE_URL if provided (Heroku), otherwise fall back to a local SQLite file
    if os.getenv('DATABASE_URL'):
        raw_url = os.environ.get("DATABASE_URL")
        # Heroku may provide postgres://; SQLAlchemy expects postgresql+psycopg2://
        if raw_url.startswith("postgres://"):
            raw_url = raw_url.replace("postgres://", "postgresql+psycopg2://", 1)
        elif raw_url.startswith("postgresql://"):
            raw_url = raw_url.replace("postgresql://", "postgresql+psycopg2://", 1)
        SQLALCHEMY_DATABASE_URI = raw_url
    else:
        # Relative SQLite paths land in the Flask instance folder
        SQLALCHEMY_DATABASE_URI = "sqlite:///signup_sheet.sqlite3"
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CSRF configuration
    WTF_CSRF_ENABLED = os.environ.get("WTF_CSRF_ENABLED", "True").lower() == "true"
    WTF_CSRF_TIME_LIMIT = int(os.environ.get("WTF_CSRF_TIME_LIMIT", 3600))  # 1 hour

    # ==========================
    # Meeting calendar
    # ==========================
    # Python weekday numbering: Monday is 0, Thursday is 3.
    MEETING_WEEKDAY = int(os.environ.get("MEETING_WEEKDAY", "3"))
    # On the meeting day itself, sign-ups roll over to next week at this local hour.
    MEETING_CUTOFF_HOUR = int(os.environ.get("MEETING_CUTOFF_HOUR", "17"))
    MEETING_TIMEZONE = os.environ.get("MEETING_TIMEZONE", "America/New_York")
    FUTURE_WEEKS = int(os.environ.get("FUTURE_WEEKS", "8"))
    DISPLAY_LOCALE = os.environ.get("DISPLAY_LOCALE", "en_US")

    TITLE_MAX_LENGTH = int(os.environ.get("TITLE_MAX_LENGTH", "200"))
    # Meeting dates outside this range are rejected as malformed
    EARLIEST_MEETING_DATE = os.environ.get("EARLIEST_MEETING_DATE", "2000-01-01")
    LATEST_MEETING_DATE = os.environ.get("LATEST_MEETING_DATE", "2099-12-31")

    # ==========================
    # Identity
    # ==========================
    REGISTRATION_ENABLED = os.environ.get("REGISTRATION_ENABLED", "True").lower() == "true"
    ANONYMOUS_SIGNIN_ENABLED = os.environ.get("ANONYMOUS_SIGNIN_ENABLED", "True").lower() == "true"

    # First admin, seeded by `flask --app app.py init-db`. Later admins are added through the API.
    BOOTSTRAP_ADMIN_EMAIL = os.environ.get("BOOTSTRAP_ADMIN_EMAIL")
