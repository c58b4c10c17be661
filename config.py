import os
class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "medsync-dev-secret")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_TIME_LIMIT = None
    APP_TIMEZONE = os.environ.get("APP_TIMEZONE", "UTC")
    ADHERENCE_WINDOW_DAYS = int(os.environ.get("ADHERENCE_WINDOW_DAYS", "30"))
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
