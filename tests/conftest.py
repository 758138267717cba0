import os

# Must be set before the application modules read their settings.
os.environ.setdefault("APP_ENV", "testing")
