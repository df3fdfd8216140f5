from smart_campus.models.academics import Fee, Notice, Student
from smart_campus.models.audit import AuditLog
from smart_campus.models.school import School, TeacherClass, User, parent_students

__all__ = ["AuditLog", "Fee", "Notice", "School", "Student", "TeacherClass", "User", "parent_students"]
