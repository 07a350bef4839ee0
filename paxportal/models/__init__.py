"""
World Cup 2026 Passenger Capture Portal
SQLAlchemy models.

Modules:
    - auth: User (MASTER / ADMIN / CLIENT)
    - sales_order: SalesOrder (synced sales log lines), SyncLog
    - capture: ClientProposalAccess, FormInstance, PassengerSlot, FormResponse
    - audit: AuditLog + record_audit()
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
