# -*- coding: utf-8 -*-
"""
tradezen.google_workspace

Thin async wrappers over the Google OAuth, Sheets and Drive REST endpoints.
"""
