"""Configuration management."""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Config:
    """Application configuration."""
    
    # Open Library endpoints
    OPENLIBRARY_BASE_URL = os.getenv("OPENLIBRARY_BASE_URL", "https://openlibrary.org")
    OPENLIBRARY_SEARCH_URL = os.getenv(
        "OPENLIBRARY_SEARCH_URL", "https://openlibrary.org/search.json"
    )
    COVERS_BASE_URL = os.getenv("COVERS_BASE_URL", "https://covers.openlibrary.org/b/id")
    COVER_SIZE = os.getenv("COVER_SIZE", "L")
    
    # Defaults
    RESULT_LIMIT = int(os.getenv("RESULT_LIMIT", "24"))
    DEFAULT_TIMEOUT = int(os.getenv("DEFAULT_TIMEOUT", "10"))
    USER_AGENT = os.getenv("USER_AGENT", "bookfinder/0.1 (+https://openlibrary.org/developers/api)")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
