# audit.py
import json
import logging
from typing import Any, Dict, Optional

from sqlmodel import Session

from models import AuditLog

logger = logging.getLogger(__name__)


def record_audit(
  session: Session,
  action: str,
  entity_type: str,
  entity_id: Optional[int],
  user_id: Optional[int] = None,
  changes: Optional[Dict[str, Any]] = None,
) -> AuditLog:
  """Stage an audit row on the session.

  The row is committed by the caller together with the change it describes,
  so a rolled back mutation leaves no audit entry behind.
  """
  entry = AuditLog(
    action=action,
    entity_type=entity_type,
    entity_id=entity_id,
    user_id=user_id,
    changes=json.dumps(changes, default=str) if changes else None,
  )
  session.add(entry)
  logger.debug("audit %s %s#%s by user %s", action, entity_type, entity_id, user_id)
  return entry
