#!/usr/bin/env python
"""
Wrapper to load sample promotions and run the promotion API with proper path setup
"""
import sys
from pathlib import Path

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

import uvicorn

from cartengine.core.config import settings
from cartengine.core.db import init_database

init_database(settings.db_path, csv_path=Path(__file__).parent / "data" / "promotions.csv")

uvicorn.run("cartengine.api.promotion_api:app", host="127.0.0.1", port=8000)
