# -*- coding: utf-8 -*-
"""
tradezen

Trade journal store kept in the user's own Google Sheets document, with
screenshots in Google Drive.
"""

__version__ = "1.0.0"
