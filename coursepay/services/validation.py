# coursepay/services/validation.py
from dataclasses import dataclass
from typing import Optional

from coursepay.errors import ValidationError
from coursepay.repositories import UnitOfWork


@dataclass(frozen=True)
class VerifiedPurchase:
    course_id: str
    course_title: str
    price: int
    instructor_id: str
    instructor_email: Optional[str]
    wallet_id: int


def validate_purchase(
    uow: UnitOfWork, course_id: str, instructor_id: str, price: int, learner_id: str
) -> VerifiedPurchase:
    """
    Pre-flight checks for a checkout, read-only:
      - instructor exists and owns a wallet
      - course exists, is published and belongs to the instructor
      - submitted price equals the catalog price (the client price is never trusted)
      - learner is not already enrolled
    Raises ValidationError on the first failed check.
    """
    if not course_id or not instructor_id or not learner_id:
        raise ValidationError("Course ID, instructor ID and learner ID are required")
    if price <= 0:
        raise ValidationError("Price must be greater than 0")

    instructor = uow.catalog.get_instructor(instructor_id)
    if not instructor:
        raise ValidationError("Instructor not found")
    wallet = uow.wallets.get_by_instructor(instructor_id)
    if not wallet:
        raise ValidationError("Instructor wallet not found")

    course = uow.catalog.get_course(course_id)
    if not course or course.instructor_id != instructor_id:
        raise ValidationError("Course not found or does not belong to the instructor")
    if not course.is_published:
        raise ValidationError("Course is not published")
    if int(course.price) != price:
        raise ValidationError(f"Invalid course price. Expected: {course.price}, Received: {price}")

    if uow.enrollments.exists(learner_id, course_id):
        raise ValidationError("User is already enrolled in this course")

    return VerifiedPurchase(
        course_id=course.id,
        course_title=course.title,
        price=int(course.price),
        instructor_id=instructor.user_id,
        instructor_email=instructor.email,
        wallet_id=wallet.id,
    )
