import os
from urllib.parse import urlparse
from dotenv import load_dotenv

load_dotenv()

class Settings:
    """Application settings and configuration with validation."""

    # ==========================================
    # QUEUE CONFIGURATION
    # ==========================================
    DEFAULT_TASK_TTL = int(os.getenv("DEFAULT_TASK_TTL", "300"))
    MAX_RESULTS = int(os.getenv("MAX_RESULTS", "200"))
    RECENT_RESULTS = int(os.getenv("RECENT_RESULTS", "20"))

    # ==========================================
    # API CONFIGURATION
    # ==========================================
    API_HOST = os.getenv("API_HOST", "0.0.0.0")
    API_PORT = int(os.getenv("API_PORT", "8000"))
    API_PREFIX = os.getenv("API_PREFIX", "/api/browser")
    EMBEDDED_CONTROLLER = os.getenv("EMBEDDED_CONTROLLER", "false").lower() == "true"
    CALLBACK_TIMEOUT = float(os.getenv("CALLBACK_TIMEOUT", "5"))

    # ==========================================
    # CONTROLLER CONFIGURATION
    # ==========================================
    QUEUE_BASE_URL = os.getenv("QUEUE_BASE_URL", "http://localhost:8000")
    CONTROLLER_ENABLED = os.getenv("CONTROLLER_ENABLED", "true").lower() == "true"
    POLL_INTERVAL = float(os.getenv("POLL_INTERVAL", "5"))
    POLL_BACKOFF = float(os.getenv("POLL_BACKOFF", "15"))
    POLL_DISABLED_INTERVAL = float(os.getenv("POLL_DISABLED_INTERVAL", "10"))
    TASK_DISPATCH_TIMEOUT = float(os.getenv("TASK_DISPATCH_TIMEOUT", "60"))
    QUEUE_REQUEST_TIMEOUT = float(os.getenv("QUEUE_REQUEST_TIMEOUT", "8"))

    # ==========================================
    # BROWSER CONFIGURATION
    # ==========================================
    HEADLESS = os.getenv("HEADLESS", "true").lower() == "true"
    BROWSER_TIMEOUT = int(os.getenv("BROWSER_TIMEOUT", "30000"))
    PAGE_LOAD_TIMEOUT = int(os.getenv("PAGE_LOAD_TIMEOUT", "20000"))
    PAGE_SETTLE_SECONDS = float(os.getenv("PAGE_SETTLE_SECONDS", "0.8"))
    NAVIGATION_SETTLE_SECONDS = float(os.getenv("NAVIGATION_SETTLE_SECONDS", "1.5"))
    ELEMENT_WAIT_TIMEOUT = int(os.getenv("ELEMENT_WAIT_TIMEOUT", "10000"))

    # ==========================================
    # PATHS
    # ==========================================
    SCREENSHOT_DIR = os.getenv("SCREENSHOT_DIR", "./screenshots")
    LOG_DIR = os.getenv("LOG_DIR", "./logs")

    # ==========================================
    # FEATURE FLAGS
    # ==========================================
    @staticmethod
    def get_feature_flags() -> dict:
        """Get current feature flag status."""
        return {
            "headless": Settings.HEADLESS,
            "embedded_controller": Settings.EMBEDDED_CONTROLLER,
            "controller_enabled": Settings.CONTROLLER_ENABLED
        }

    # ==========================================
    # VALIDATION
    # ==========================================
    @staticmethod
    def validate_configuration():
        """Validate critical configuration settings."""
        errors = []
        warnings = []

        # 1. Queue endpoint
        parsed = urlparse(Settings.QUEUE_BASE_URL)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            errors.append(f"QUEUE_BASE_URL must be an http(s) URL, got '{Settings.QUEUE_BASE_URL}'")

        # 2. Numeric settings
        if Settings.DEFAULT_TASK_TTL <= 0:
            errors.append("DEFAULT_TASK_TTL must be positive")

        if Settings.MAX_RESULTS < 1:
            errors.append("MAX_RESULTS must be at least 1")

        if Settings.POLL_INTERVAL <= 0 or Settings.POLL_BACKOFF <= 0:
            errors.append("POLL_INTERVAL and POLL_BACKOFF must be positive")

        if Settings.POLL_BACKOFF < Settings.POLL_INTERVAL:
            warnings.append("POLL_BACKOFF is shorter than POLL_INTERVAL - unreachable queues will be polled faster")

        if Settings.TASK_DISPATCH_TIMEOUT <= 0:
            errors.append("TASK_DISPATCH_TIMEOUT must be positive")

        if Settings.PAGE_LOAD_TIMEOUT < 1000:
            warnings.append("PAGE_LOAD_TIMEOUT is very low - most pages will fail to load")

        if Settings.ELEMENT_WAIT_TIMEOUT / 1000 >= Settings.TASK_DISPATCH_TIMEOUT:
            warnings.append(
                "ELEMENT_WAIT_TIMEOUT exceeds TASK_DISPATCH_TIMEOUT - element waits will never report"
            )

        # Print warnings
        if warnings:
            print("\n⚠️  Configuration Warnings:")
            for warning in warnings:
                print(f"   - {warning}")

        # Raise errors if any
        if errors:
            error_msg = "\n❌ Configuration Errors:\n" + "\n".join(f"   - {e}" for e in errors)
            raise ValueError(error_msg)

        return True

settings = Settings()

# Validate on module load
try:
    settings.validate_configuration()
except ValueError as e:
    print(f"\n{e}")
    print("\n💡 Fix these issues in your .env file before running.")
