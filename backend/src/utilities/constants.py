# ------------ Config ------------
SUBSCRIBER_QUEUE_SIZE = 1000  # bounded per-listener queue
INBOUND_QUEUE_SIZE = 1000     # shared queue between /webhook and the broadcaster
COOKIE_NAME = "idx"           # session cookie read by /logs, set by /
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
# --------------------------------
