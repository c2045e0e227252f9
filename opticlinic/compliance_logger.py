import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .enums import AuditAction

_TRANSITION_ACTIONS = {"TAKE", "PAUSE", "RESUME", "COMPLETE", "RESCHEDULE"}


def normalize_action(action: Any) -> AuditAction:
	"""Reduce free-form action names to the AuditAction enum."""
	if isinstance(action, AuditAction):
		return action
	action_upper = str(getattr(action, "value", action) or "").upper()
	if action_upper in AuditAction.__members__:
		return AuditAction[action_upper]
	if action_upper in _TRANSITION_ACTIONS:
		return AuditAction.TRANSITION
	if 'LOGIN' in action_upper:
		return AuditAction.LOGIN
	if 'LOGOUT' in action_upper:
		return AuditAction.LOGOUT
	if action_upper.endswith('_CREATE') or action_upper.startswith('CREATE_'):
		return AuditAction.CREATE
	if action_upper.endswith('_UPDATE') or action_upper.startswith('UPDATE_'):
		return AuditAction.UPDATE
	if action_upper.endswith('_DELETE') or action_upper.startswith('DELETE_'):
		return AuditAction.DELETE
	if 'DENIED' in action_upper:
		return AuditAction.ACCESS_DENIED
	if 'EXPORT' in action_upper or 'PDF' in action_upper:
		return AuditAction.EXPORT
	return AuditAction.READ


class ComplianceLogger:
	"""Stores audit events in the AuditLog table through the caller's session."""

	def __init__(self):
		self.logger = logging.getLogger('compliance')

	def log_event(
		self,
		db: Session,
		user_id: Optional[int],
		action: Any,
		category: str,
		details: Optional[str] = None,
		severity: str = 'INFO',
		resource_type: Optional[str] = None,
		resource_id: Optional[int] = None,
		username: Optional[str] = None,
		old_values: Optional[dict] = None,
		new_values: Optional[dict] = None,
		ip_address: Optional[str] = None,
		user_agent: Optional[str] = None,
		**_: Any
	) -> Optional[models.AuditLog]:
		"""Persist one audit row. Audit failures are logged and never break the request."""
		try:
			if username is None and user_id:
				username = db.query(models.User.email).filter(models.User.id == user_id).scalar()
			db_log = models.AuditLog(
				user_id=user_id,
				username=username or 'System',
				action=normalize_action(action),
				category=category or 'GENERAL',
				severity=severity or 'INFO',
				resource_type=resource_type,
				resource_id=resource_id,
				details=details,
				old_values=old_values,
				new_values=new_values,
				ip_address=ip_address,
				user_agent=user_agent,
				timestamp=datetime.now(timezone.utc),
			)
			db.add(db_log)
			db.commit()
			return db_log
		except SQLAlchemyError as e:
			db.rollback()
			self.logger.error(f"Failed to save compliance log to DB: {e}")
			return None

	def log_access(
		self,
		db: Session,
		user_id: Optional[int],
		resource_type: str,
		resource_id: Optional[int],
		purpose: str,
		**kwargs: Any
	) -> None:
		"""Logs a data access event into the AuditLog table."""
		self.log_event(
			db,
			user_id=user_id,
			action='READ',
			category='DATA_ACCESS',
			details=f"Accessed {resource_type}:{resource_id} for {purpose}",
			resource_type=resource_type,
			resource_id=resource_id,
			**kwargs
		)


# Singleton instance for global import
compliance_logger = ComplianceLogger()
