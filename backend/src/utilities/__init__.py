from utilities.constants import COOKIE_NAME, INBOUND_QUEUE_SIZE, LOG_FORMAT, SUBSCRIBER_QUEUE_SIZE
from utilities.config import Settings
from utilities.utility_functions import bearer_matches, configure_logging, now_ts, parse_session_cookie
