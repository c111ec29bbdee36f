from __future__ import annotations

import os


os.environ.setdefault("CMS_IMAGES_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("CMS_IMAGES_GENERATION_BASE_URL", "http://generator.test")
