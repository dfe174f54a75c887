# config.py
import os
import re
import urllib.parse
from dotenv import load_dotenv
import logging

logger = logging.getLogger(__name__)

# Referral revenue share: referrer receives a cut when the invitee earns or buys
REFERRAL_REVENUE_SHARE = {
    'earning_share_percent': 1,   # 1% of CLUB earned
    'purchase_multiplier': 10     # USD x 10 = CLUB
}

REFERRAL_REWARDS = {
    'invitee': {'club': 250, 'bonus_tickets': 3},
    'referrer': {'signup_bonus': 0}
}

# Load environment variables
load_dotenv()


def _env_bool(name, default):
    return os.getenv(name, str(default)).lower() in ('1', 'true', 'yes')


class Config:

    def __init__(self):
        # Core configuration
        self.ENV = os.getenv('ENV', 'production')
        self.PORT = int(os.getenv('PORT', 10000))
        self.SECRET_KEY = os.getenv('SECRET_KEY', 'your_secret_key_here')
        self.APP_URL = os.getenv('APP_URL', 'https://toppest.app')

        # Logging
        self.LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
        self.LOG_FILE = os.getenv('LOG_FILE', 'logs/app.log')

        # Storage backend - picked once at startup
        raw_uri = os.getenv('MONGO_URI')
        self.MONGO_URI = self.encode_mongo_uri(raw_uri.strip()) if raw_uri else None
        self.MONGO_DB_NAME = os.getenv('MONGO_DB_NAME', 'toppest')
        self.STORE_BACKEND = (os.getenv('STORE_BACKEND') or ('mongo' if self.MONGO_URI else 'memory')).lower()
        if self.STORE_BACKEND == 'mongo':
            self.validate_mongo_config()

        # Ticket economy
        self.MAX_DAILY_TICKETS = int(os.getenv('MAX_DAILY_TICKETS', 3))
        # Compare-and-set rounds before a ticket update gives up with a 409
        self.TICKET_WRITE_ATTEMPTS = int(os.getenv('TICKET_WRITE_ATTEMPTS', 10))

        # Session tokens & rate limiting
        self.SESSION_TOKEN_EXPIRY_MS = int(os.getenv('SESSION_TOKEN_EXPIRY_MS', 10 * 60 * 1000))
        self.SESSION_CLEANUP_GRACE_MS = int(os.getenv('SESSION_CLEANUP_GRACE_MS', 60 * 60 * 1000))
        self.MAX_GAMES_PER_HOUR = int(os.getenv('MAX_GAMES_PER_HOUR', 20))
        self.MAX_GAMES_PER_DAY = int(os.getenv('MAX_GAMES_PER_DAY', 100))
        self.MIN_SUBMISSION_INTERVAL_MS = int(os.getenv('MIN_SUBMISSION_INTERVAL_MS', 5000))
        self.STRICT_SESSION_MODE = _env_bool('STRICT_SESSION_MODE', False)
        self.SERVER_AUTHORITATIVE_DIFFICULTY = _env_bool('SERVER_AUTHORITATIVE_DIFFICULTY', True)

        # Referral economy
        self.EARNING_SHARE_PERCENT = float(os.getenv(
            'EARNING_SHARE_PERCENT', REFERRAL_REVENUE_SHARE['earning_share_percent']))
        self.PURCHASE_MULTIPLIER = float(os.getenv(
            'PURCHASE_MULTIPLIER', REFERRAL_REVENUE_SHARE['purchase_multiplier']))
        self.INVITEE_CLUB_REWARD = int(os.getenv('INVITEE_CLUB_REWARD', REFERRAL_REWARDS['invitee']['club']))
        self.INVITEE_TICKET_REWARD = int(os.getenv(
            'INVITEE_TICKET_REWARD', REFERRAL_REWARDS['invitee']['bonus_tickets']))
        self.NEW_USER_WINDOW_SECONDS = int(os.getenv('NEW_USER_WINDOW_SECONDS', 60))

        # Log configuration status
        self.log_config_summary()

    def encode_mongo_uri(self, uri):
        """Encode special characters in MongoDB URI"""
        if uri.startswith('"') and uri.endswith('"'):
            uri = uri[1:-1]
        if "://" not in uri:
            return uri

        protocol, auth_host = uri.split("://", 1)

        if "@" in auth_host:
            auth, host = auth_host.rsplit("@", 1)
            if ":" in auth:
                user, password = auth.split(":", 1)
                password = urllib.parse.quote_plus(urllib.parse.unquote_plus(password))
                auth = f"{user}:{password}"
            return f"{protocol}://{auth}@{host}"
        return uri

    def validate_mongo_config(self):
        """Validate MongoDB configuration"""
        if not self.MONGO_URI:
            logger.error("MONGO_URI is not set but STORE_BACKEND is 'mongo'")
            raise ValueError("MongoDB connection string is required")

        if not re.match(r'^mongodb(\+srv)?://', self.MONGO_URI):
            # Log first 20 chars for debugging (without exposing credentials)
            sample = self.MONGO_URI[:20]
            logger.error(f"Invalid MONGO_URI format. Starts with: '{sample}...'")
            raise ValueError("Invalid MongoDB URI format")

        logger.info(f"Using MongoDB database: {self.MONGO_DB_NAME}")

    def log_config_summary(self):
        """Log a secure summary of the configuration"""
        logger.info("Configuration Summary:")
        logger.info(f"Environment: {self.ENV}")
        logger.info(f"Store backend: {self.STORE_BACKEND}")
        if self.MONGO_URI:
            logger.info(f"MongoDB URI: {self.secure_mask(self.MONGO_URI, show_first=14)}")
        logger.info(f"Daily tickets: {self.MAX_DAILY_TICKETS}")
        logger.info(f"Session expiry: {self.SESSION_TOKEN_EXPIRY_MS // 1000}s, strict mode: {self.STRICT_SESSION_MODE}")
        logger.info(f"Rate limits: {self.MAX_GAMES_PER_HOUR}/h, {self.MAX_GAMES_PER_DAY}/day, "
                    f"min interval {self.MIN_SUBMISSION_INTERVAL_MS}ms")
        logger.info(f"Revenue share: {self.EARNING_SHARE_PERCENT}% earnings, x{self.PURCHASE_MULTIPLIER} purchases")

        if self.STORE_BACKEND == 'memory' and self.ENV == 'production':
            logger.warning("In-memory store selected in production - state is lost on restart")

    def secure_mask(self, value, show_first=6, show_last=4):
        """Mask sensitive information for logging"""
        if not value or len(value) < (show_first + show_last):
            return "[REDACTED]"
        return f"{value[:show_first]}...{value[-show_last:]}"


# Create singleton instance
config = Config()
