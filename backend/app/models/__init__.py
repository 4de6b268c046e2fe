from app.models.staff_member import StaffMember
from app.models.question import Question
from app.models.test_result import TestResultRecord
from app.models.assessment_session import AssessmentSessionRecord
from app.models.mail_message import MailMessage
from app.models.portal_setting import PortalSetting

__all__ = ["StaffMember", "Question", "TestResultRecord", "AssessmentSessionRecord",
           "MailMessage", "PortalSetting"]
