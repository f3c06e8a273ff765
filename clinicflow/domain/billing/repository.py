"""Billing repository - Database operations for bills and the service catalogue"""

from typing import Optional

from sqlalchemy.orm import Session

from ...enums import PaymentStatus
from ...models import BillableService, BillItem, Doctor, Payment


class PaymentRepository:
    """Repository for billing database operations"""

    @staticmethod
    def find_by_appointment_id(
        db: Session, appointment_id: int, for_update: bool = False
    ) -> Optional[Payment]:
        query = db.query(Payment).filter(Payment.appointment_id == appointment_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def upsert_with_items(
        db: Session,
        payment: Optional[Payment],
        *,
        patient_id: int,
        appointment_id: int,
        bill_date,
        discount: float,
        total_amount: float,
        items: list[dict],
    ) -> Payment:
        """
        Create the bill or revise an existing one.

        Items are replaced wholesale: the old rows are orphaned and deleted on
        flush, never merged with the new ones.
        """
        if payment is None:
            payment = Payment(
                patient_id=patient_id,
                appointment_id=appointment_id,
                bill_date=bill_date,
                amount_paid=0,
                status=PaymentStatus.UNPAID,
            )
            db.add(payment)
        payment.discount = discount
        payment.total_amount = total_amount
        payment.bill_items = [BillItem(**item) for item in items]
        db.flush()
        return payment

    @staticmethod
    def get_service(db: Session, service_id: int) -> Optional[BillableService]:
        return db.query(BillableService).filter(BillableService.id == service_id).first()

    @staticmethod
    def get_or_create_service_by_code(
        db: Session, code: str, name: str, price: Optional[float] = None
    ) -> BillableService:
        service = db.query(BillableService).filter(BillableService.code == code).first()
        if service is None:
            service = BillableService(code=code, name=name, category="CONSULTATION", price=price)
            db.add(service)
            db.flush()
        return service

    @staticmethod
    def get_doctor(db: Session, doctor_id: int) -> Optional[Doctor]:
        return db.query(Doctor).filter(Doctor.id == doctor_id).first()
