from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from taskmirror.errors import CalendarStoreError
from taskmirror.models import GoogleCalendarConfig, MirroredEvent, serialize_datetime

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]


def _client_config(config: GoogleCalendarConfig) -> dict[str, Any]:
    return {
        "installed": {
            "client_id": config.client_id,
            "client_secret": config.client_secret,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "redirect_uris": ["http://localhost"],
        }
    }


def load_credentials(config: GoogleCalendarConfig) -> Credentials:
    token_path = Path(config.token_path).expanduser()
    creds: Credentials | None = None
    if token_path.exists():
        try:
            creds = Credentials.from_authorized_user_file(str(token_path), SCOPES)
        except ValueError as exc:
            logger.warning("Ignoring unreadable token file %s: %s", token_path, exc)
            creds = None
    if creds and creds.valid:
        return creds
    if creds and creds.expired and creds.refresh_token:
        creds.refresh(Request())
    else:
        logger.info("No valid token found, requesting new authorization")
        if config.client_id and config.client_secret:
            flow = InstalledAppFlow.from_client_config(_client_config(config), SCOPES)
        else:
            credentials_path = Path(config.credentials_path).expanduser()
            if not credentials_path.exists():
                raise CalendarStoreError(f"unable to read credentials file: {credentials_path}")
            flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), SCOPES)
        creds = flow.run_local_server(port=0)
    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.write_text(creds.to_json(), encoding="utf-8")
    token_path.chmod(0o600)
    return creds


class GoogleCalendarService:
    def __init__(self, config: GoogleCalendarConfig, service: Any = None) -> None:
        self.config = config
        self._service = service

    def _connect(self) -> Any:
        if self._service is not None:
            return self._service
        try:
            creds = load_credentials(self.config)
        except GoogleAuthError as exc:
            raise CalendarStoreError(f"unable to authorize: {exc}") from exc
        self._service = build("calendar", "v3", credentials=creds, cache_discovery=False)
        return self._service

    def find_calendar_id(self, name: str) -> str:
        service = self._connect()
        page_token = None
        try:
            while True:
                response = service.calendarList().list(pageToken=page_token).execute()
                for item in response.get("items", []):
                    if item.get("summary") == name:
                        return str(item["id"])
                page_token = response.get("nextPageToken")
                if not page_token:
                    break
        except HttpError as exc:
            raise CalendarStoreError(f"failed to list calendars: {exc}") from exc
        raise CalendarStoreError(f"calendar '{name}' not found")

    def resolve_calendar_id(self) -> str:
        if self.config.calendar_id:
            return self.config.calendar_id
        return self.find_calendar_id(self.config.calendar_name)

    def list_events(self, calendar_id: str, time_min: datetime, time_max: datetime) -> list[MirroredEvent]:
        service = self._connect()
        events: list[MirroredEvent] = []
        page_token = None
        try:
            while True:
                response = (
                    service.events()
                    .list(
                        calendarId=calendar_id,
                        timeMin=serialize_datetime(time_min),
                        timeMax=serialize_datetime(time_max),
                        singleEvents=True,
                        orderBy="startTime",
                        maxResults=2500,
                        pageToken=page_token,
                    )
                    .execute()
                )
                events.extend(MirroredEvent.from_api(item) for item in response.get("items", []))
                page_token = response.get("nextPageToken")
                if not page_token:
                    break
        except HttpError as exc:
            raise CalendarStoreError(f"failed to list events: {exc}") from exc
        return events

    def insert_event(self, calendar_id: str, body: dict[str, Any]) -> MirroredEvent:
        service = self._connect()
        try:
            created = service.events().insert(calendarId=calendar_id, body=body).execute()
        except HttpError as exc:
            raise CalendarStoreError(f"failed to insert event: {exc}") from exc
        return MirroredEvent.from_api(created)

    def update_event(self, calendar_id: str, event_id: str, body: dict[str, Any]) -> MirroredEvent:
        service = self._connect()
        payload = dict(body)
        payload["id"] = event_id
        try:
            updated = (
                service.events().update(calendarId=calendar_id, eventId=event_id, body=payload).execute()
            )
        except HttpError as exc:
            raise CalendarStoreError(f"failed to update event: {exc}") from exc
        return MirroredEvent.from_api(updated)

    def delete_event(self, calendar_id: str, event_id: str) -> None:
        service = self._connect()
        try:
            service.events().delete(calendarId=calendar_id, eventId=event_id).execute()
        except HttpError as exc:
            raise CalendarStoreError(f"failed to delete event: {exc}") from exc
