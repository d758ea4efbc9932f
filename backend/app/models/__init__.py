from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.assignation import Assignation, assignation_sections  # noqa: F401
from app.models.course import Course, CourseType, course_programs  # noqa: F401
from app.models.department import Department, DepartmentSettings, UnschedulablePolicy  # noqa: F401
from app.models.professor import Professor  # noqa: F401
from app.models.program import Program, Section  # noqa: F401
from app.models.room import Room, RoomType  # noqa: F401
from app.models.schedule import ScheduleEntry, schedule_sections  # noqa: F401
