# opticlinic/client.py
"""Python client for the OptiClinic API.

``ClinicClient`` wraps the HTTP endpoints and ``LifecycleView`` drives the
attention screen of one appointment: it derives the available actions from the
last fetched appointment, performs an action, re-fetches, and turns errors
into toasts. It keeps no other state and never retries.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from . import schemas
from .services import workflow

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
DEFAULT_TIMEOUT = 30.0


class ClinicAPIError(Exception):
    """Error body returned by the API, or a local validation/network failure."""

    def __init__(self, status_code: int, error_type: str, message: str, payload: Optional[dict] = None):
        self.status_code = status_code
        self.error_type = error_type
        self.message = message
        self.payload = payload or {}
        super().__init__(f"{status_code} {error_type}: {message}")

    @property
    def errors(self) -> Dict[str, List[str]]:
        return self.payload.get("errors") or {}

    @property
    def current_appointment_id(self) -> Optional[int]:
        return self.payload.get("current_appointment_id")

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ClinicAPIError":
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        return cls(
            response.status_code,
            payload.get("error_type", "error"),
            payload.get("message") or response.reason_phrase or "Request failed.",
            payload,
        )

    @classmethod
    def from_validation(cls, exc: PydanticValidationError) -> "ClinicAPIError":
        errors: Dict[str, List[str]] = {}
        for error in exc.errors():
            field_name = str(error["loc"][-1]) if error.get("loc") else "request"
            message = error.get("msg", "Invalid value.")
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
            errors.setdefault(field_name, []).append(message)
        first = next(iter(errors.values()))[0] if errors else "The given data was invalid."
        return cls(422, "validation_error", first, {"errors": errors})


class SessionStore:
    """The signed-in user and token, shared by every view of one client."""

    def __init__(self):
        self.token: Optional[str] = None
        self.user: Optional[dict] = None
        self._subscribers: List[Callable[["SessionStore"], None]] = []

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    @property
    def user_id(self) -> Optional[int]:
        return self.user["id"] if self.user else None

    def subscribe(self, callback: Callable[["SessionStore"], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def set_session(self, token: str, user: dict) -> None:
        self.token = token
        self.user = user
        self._notify()

    def clear(self) -> None:
        if self.token is None and self.user is None:
            return
        self.token = None
        self.user = None
        self._notify()

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            callback(self)


class ClinicClient:
    def __init__(self, base_url: str = "http://localhost:8000", http: Optional[httpx.Client] = None,
                 session: Optional[SessionStore] = None, timeout: float = DEFAULT_TIMEOUT):
        self.http = http or httpx.Client(base_url=base_url, timeout=timeout)
        self.session = session or SessionStore()

    def close(self) -> None:
        self.http.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if self.session.token:
            headers["Authorization"] = f"Bearer {self.session.token}"
        try:
            response = self.http.request(method, f"{API_PREFIX}{path}", headers=headers, **kwargs)
        except httpx.ConnectError:
            logger.error(f"Cannot connect to the API for {method} {path}")
            raise ClinicAPIError(0, "network_error", "Cannot connect to the server.")

        if response.status_code == 401:
            self.session.clear()
        if response.is_error:
            raise ClinicAPIError.from_response(response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # --- Session ---

    def login(self, email: str, password: str) -> dict:
        body = self._request("POST", "/auth/login", json={"email": email, "password": password})
        self.session.set_session(body["access_token"], body["user"])
        return body["user"]

    def logout(self) -> None:
        try:
            if self.session.token:
                self._request("POST", "/auth/logout")
        finally:
            self.session.clear()

    def me(self) -> dict:
        return self._request("GET", "/auth/me")

    # --- Appointments ---

    def list_appointments(self, **filters) -> dict:
        params = {key: value for key, value in filters.items() if value is not None}
        return self._request("GET", "/appointments", params=params)

    def get_appointment(self, appointment_id: int) -> dict:
        return self._request("GET", f"/appointments/{appointment_id}")

    def take(self, appointment_id: int) -> dict:
        return self._request("POST", f"/appointments/{appointment_id}/take")

    def pause(self, appointment_id: int) -> dict:
        return self._request("POST", f"/appointments/{appointment_id}/pause")

    def resume(self, appointment_id: int) -> dict:
        return self._request("POST", f"/appointments/{appointment_id}/resume")

    def complete(self, appointment_id: int) -> dict:
        return self._request("PATCH", f"/appointments/{appointment_id}", json={"status": "completed"})

    def save_annotations(self, appointment_id: int, **sides) -> dict:
        payload = schemas.AppointmentAnnotations(**sides)
        return self._request("POST", f"/appointments/{appointment_id}/annotations",
                             json=payload.model_dump(mode="json"))

    def workflow(self, appointment_id: int) -> dict:
        return self._request("GET", f"/appointments/{appointment_id}/workflow")

    def prescription_gate(self, appointment_id: int) -> dict:
        return self._request("GET", f"/appointments/{appointment_id}/prescription-gate")

    # --- Clinical records ---

    def create_evolution(self, appointment_id: int, **fields) -> dict:
        """Validate locally with the server's own schema, then submit."""
        try:
            payload = schemas.ClinicalEvolutionFromAppointment(**fields)
        except PydanticValidationError as e:
            raise ClinicAPIError.from_validation(e)
        return self._request(
            "POST", f"/appointments/{appointment_id}/evolution",
            json=payload.model_dump(mode="json", exclude_unset=True),
        )

    def create_prescription(self, appointment_id: int, **fields) -> dict:
        try:
            payload = schemas.PrescriptionCreate(appointment_id=appointment_id, **fields)
        except PydanticValidationError as e:
            raise ClinicAPIError.from_validation(e)
        return self._request("POST", "/prescriptions", json=payload.model_dump(mode="json", exclude_unset=True))

    def history_evolutions(self, history_id: int, page: int = 1, per_page: Optional[int] = None) -> dict:
        params = {"page": page}
        if per_page:
            params["per_page"] = per_page
        return self._request("GET", f"/clinical-histories/{history_id}/evolutions", params=params)


@dataclass
class Toast:
    level: str
    message: str
    error_type: Optional[str] = None


@dataclass
class LifecycleView:
    client: ClinicClient
    appointment_id: int
    on_toast: Optional[Callable[[Toast], None]] = None
    on_navigate: Optional[Callable[[int], None]] = None
    appointment: Optional[dict] = None
    toasts: List[Toast] = field(default_factory=list)
    navigate_to: Optional[int] = None

    ACTIONS = ("take", "pause", "resume", "complete")

    def refresh(self) -> Optional[dict]:
        try:
            self.appointment = self.client.get_appointment(self.appointment_id)
        except ClinicAPIError as e:
            self._toast("error", e.message, e.error_type)
        return self.appointment

    @property
    def actions(self) -> schemas.LifecycleActions:
        if self.appointment is None:
            return schemas.LifecycleActions(can_take=False, can_pause=False, can_resume=False, can_complete=False)
        return workflow.derive_actions(
            self.appointment["status"],
            self.appointment.get("taken_by_id"),
            self.client.session.user_id,
            self.appointment.get("has_prescription", False),
        )

    @property
    def ui_state(self) -> Optional[workflow.UIState]:
        if self.appointment is None:
            return None
        return workflow.derive_ui_state(
            self.appointment["status"], self.appointment.get("taken_by_id"), self.client.session.user_id
        )

    @property
    def checklist(self) -> List[schemas.ChecklistItem]:
        appointment = self.appointment or {}
        return workflow.checklist(appointment.get("has_evolutions", False), appointment.get("has_prescription", False))

    def perform(self, action: str) -> bool:
        """Run one lifecycle action and re-fetch. Returns whether it succeeded."""
        if action not in self.ACTIONS:
            raise ValueError(f"Unknown lifecycle action: {action}")
        if not getattr(self.actions, f"can_{action}"):
            self._toast("warning", f"The '{action}' action is not available for this appointment.")
            return False

        succeeded = False
        try:
            getattr(self.client, action)(self.appointment_id)
            succeeded = True
            self._toast("success", f"Appointment {action} succeeded.")
        except ClinicAPIError as e:
            self._toast("error", e.message, e.error_type)
            if e.error_type == "appointment_in_progress" and e.current_appointment_id:
                self.navigate_to = e.current_appointment_id
                if self.on_navigate:
                    self.on_navigate(e.current_appointment_id)
        self.refresh()
        return succeeded

    def _toast(self, level: str, message: str, error_type: Optional[str] = None) -> None:
        toast = Toast(level=level, message=message, error_type=error_type)
        self.toasts.append(toast)
        if self.on_toast:
            self.on_toast(toast)
