# storefront/repos/order_repo.py
from typing import List, Tuple

from sqlalchemy import select, func
from sqlalchemy.orm import Session, selectinload

from storefront.data.models.order import OrderModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: int, for_update: bool = False) -> OrderModel | None:
        stmt = select(OrderModel).options(selectinload(OrderModel.items)).where(OrderModel.id == order_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def get_order_by_number(self, order_number: str, for_update: bool = False) -> OrderModel | None:
        stmt = (
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(OrderModel.order_number == order_number)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def get_latest_order_for_cart(self, cart_id: int, status: str | None = None) -> OrderModel | None:
        stmt = select(OrderModel).where(OrderModel.cart_id == cart_id)
        if status:
            stmt = stmt.where(OrderModel.status == status)
        stmt = stmt.order_by(OrderModel.created_at.desc(), OrderModel.id.desc()).limit(1)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_orders_page(self, user_id: int, page: int, size: int) -> Tuple[List[OrderModel], int]:
        total = self.db.execute(
            select(func.count()).select_from(OrderModel).where(OrderModel.user_id == user_id)
        ).scalar_one()
        orders = self.db.execute(
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(OrderModel.user_id == user_id)
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            .offset(page * size)
            .limit(size)
        ).scalars().all()
        return list(orders), total

    def get_orders_for_user(self, user_id: int, status: str | None = None) -> List[OrderModel]:
        stmt = select(OrderModel).options(selectinload(OrderModel.items)).where(OrderModel.user_id == user_id)
        if status:
            stmt = stmt.where(OrderModel.status == status)
        stmt = stmt.order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
        return list(self.db.execute(stmt).scalars().all())

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
