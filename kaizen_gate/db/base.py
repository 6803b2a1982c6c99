# Import all the models, so that Base has them before create_all() runs
from kaizen_gate.db.base_class import Base  # noqa

from kaizen_gate.models.client import Client  # noqa
from kaizen_gate.models.license import License  # noqa
from kaizen_gate.models.report import Report, ReportGrant  # noqa
from kaizen_gate.models.login_audit import LoginAudit, LoginThrottle  # noqa
