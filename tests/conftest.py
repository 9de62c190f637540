import os

# Keep the app from polling the real RedisQ endpoint under test
os.environ.setdefault("FEED_AUTOSTART", "false")
os.environ.setdefault("LOG_JSON", "false")
