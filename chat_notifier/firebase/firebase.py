import json
import logging
from typing import Optional

import firebase_admin
import google.cloud.firestore
from firebase_admin import credentials, firestore

from ..config import Settings

logger = logging.getLogger(__name__)


class FirebaseApp:
    """Owns the process-wide Firebase app and hands out its clients."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.app: Optional[firebase_admin.App] = None
        self.firestore_db: Optional[google.cloud.firestore.Client] = None

    def get_firestore_db(self) -> google.cloud.firestore.Client:
        if self.firestore_db is None:
            self.connect()
        return self.firestore_db

    def get_app(self) -> firebase_admin.App:
        if self.app is None:
            self.connect()
        return self.app

    def connect(self) -> None:
        try:
            # Try to get the existing default app (warm start)
            self.app = firebase_admin.get_app()
            logger.info("Retrieved existing Firebase app")
        except ValueError:
            self.app = firebase_admin.initialize_app(
                credential=self._load_credential(),
                options=self._app_options(),
            )
            logger.info(f"Initialized Firebase app. App name: {self.app.name}")
        self.firestore_db = firestore.client(self.app)

    def _load_credential(self) -> Optional[credentials.Base]:
        cert_json = self.settings.firebase_secret
        if not cert_json:
            # Cloud Functions runtime provides application default credentials
            return None
        try:
            cert_dict = json.loads(cert_json)
            if isinstance(cert_dict, str):
                cert_dict = json.loads(cert_dict)
        except json.JSONDecodeError as e:
            logger.error(f"Firebase secret is not valid JSON: {str(e)}")
            raise ValueError("Firebase secret is not valid JSON") from e
        return credentials.Certificate(cert_dict)

    def _app_options(self) -> Optional[dict]:
        if self.settings.firebase_project_id:
            return {"projectId": self.settings.firebase_project_id}
        return None
