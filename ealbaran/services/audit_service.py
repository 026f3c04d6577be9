"""
Audit logging service for tracking delivery note, invoice and session actions.
"""
import json
import logging
from datetime import datetime
from typing import Optional

from flask import g, has_request_context, request

from ealbaran.models.audit_log import AuditLog, AuditAction

logger = logging.getLogger(__name__)


def log_action(
    session,
    action: AuditAction,
    resource_type: str = None,
    resource_id: int = None,
    details: dict = None,
    tenant_id: Optional[int] = None,
    user_id: Optional[int] = None
):
    """
    Add an audit entry to the session.

    tenant_id/user_id default to the request context (g). Entries without
    both are still recorded for session events such as failed logins.

    Note: Caller is responsible for committing the session.
    """
    try:
        if has_request_context():
            if user_id is None and g.get('user') is not None:
                user_id = g.user.id
            if tenant_id is None:
                tenant_id = g.get('tenant_id')
            ip_address = request.remote_addr
            user_agent = request.headers.get('User-Agent', '')[:255]
        else:
            ip_address = None
            user_agent = None

        details_json = None
        if details:
            try:
                details_json = json.dumps(details, default=str)
            except (TypeError, ValueError) as e:
                logger.warning(f"Failed to serialize audit details: {e}")
                details_json = str(details)

        session.add(AuditLog(
            tenant_id=tenant_id,
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details_json,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=datetime.utcnow()
        ))
        logger.info(f"Audit log created: {action.value} by user {user_id} on {resource_type} {resource_id}")

    except Exception as e:
        # Audit failures should not break business logic
        logger.error(f"Failed to create audit log: {e}")


def record_action(session, action: AuditAction, resource_type: str = None,
                  resource_id: int = None, details: dict = None, **context) -> None:
    """log_action + commit, for callers whose main transaction is already committed."""
    try:
        log_action(session, action, resource_type, resource_id, details, **context)
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Failed to commit audit log {action.value}: {e}")


def get_audit_logs(
    session,
    tenant_id: int,
    limit: int = 100,
    offset: int = 0,
    action_filter: AuditAction = None,
    resource_type_filter: str = None,
    resource_id_filter: int = None
):
    """Audit entries of a tenant, newest first."""
    query = session.query(AuditLog).filter(AuditLog.tenant_id == tenant_id)

    if action_filter:
        query = query.filter(AuditLog.action == action_filter)
    if resource_type_filter:
        query = query.filter(AuditLog.resource_type == resource_type_filter)
    if resource_id_filter:
        query = query.filter(AuditLog.resource_id == resource_id_filter)

    return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).offset(offset).all()
