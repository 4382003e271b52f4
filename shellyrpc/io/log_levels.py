import logging

LOG_LEVEL_IO = 5
logging.addLevelName(LOG_LEVEL_IO, "IO")
