"""WSGI entry point for production deployment."""
import sys
import os
import logging
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).parent))

from config import load_config
from utils.logger import setup_logging
from main import build_components
from monitor.scheduler import MonitorScheduler
from web.app import create_app

logger = logging.getLogger("slamonitor.wsgi")

config = load_config(os.environ.get("SLA_MONITOR_CONFIG"))
setup_logging(config["logging"].get("level", "INFO"), config["logging"].get("file"))

components = build_components(config)

scheduler = None
if os.environ.get("SLA_MONITOR_SCHEDULER", "1") != "0":
    scheduler = MonitorScheduler(components["monitor"],
                                 interval_seconds=config["monitor"]["poll_interval"])
    scheduler.start()
    logger.info("Background evaluation loop started")

app = create_app(config, components, scheduler=scheduler)
