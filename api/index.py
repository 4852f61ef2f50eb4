from mangum import Mangum
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ledger.api import create_app
from ledger.logging_config import setup_logging

# Mangum runs with the lifespan off, so logging is configured here.
setup_logging()

# Serverless invocations do not share memory, so the Telegram bot is only
# polled by the long-running server in ledger/main.py.
app = create_app(root_path="/api")

handler = Mangum(app, lifespan="off")
