import os

API_URL = os.getenv("B2_API_URL", "https://api.backblazeb2.com")
API_VERSION = "v2"
REQUEST_TIMEOUT = float(os.getenv("B2_REQUEST_TIMEOUT", "60"))

CONTENT_TYPE_AUTO = "b2/x-auto"
MAX_INFO_HEADERS = 10

# Service limits, in bytes
SINGLE_FILE_MAX_SIZE = 5 * 1000**3
LARGE_FILE_MIN_SIZE = 5 * 1000**2
LARGE_FILE_MAX_SIZE = 10 * 1000**4

MAX_PART_NUMBER = 10000
DEFAULT_MAX_PART_COUNT = 1000
DEFAULT_UPLOAD_THREADS = 4
READ_BLOCK_SIZE = 1024 * 1024
USER_AGENT = "b2client-python"
