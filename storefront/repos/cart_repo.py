# storefront/repos/cart_repo.py
from datetime import datetime
from typing import List

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel


class CartRepo:
    """Dostep do koszykow. Nie robi commitow sam, transakcja nalezy do serwisu."""

    def __init__(self, db: Session):
        self.db = db

    def get_cart(self, cart_id: int) -> CartModel | None:
        return self.db.execute(
            select(CartModel)
            .options(selectinload(CartModel.items))
            .where(CartModel.id == cart_id)
        ).scalar_one_or_none()

    def get_active_cart_by_user(self, user_id: int) -> CartModel | None:
        return self.db.execute(
            select(CartModel)
            .options(selectinload(CartModel.items))
            .where(CartModel.user_id == user_id, CartModel.status == "ACTIVE")
        ).scalar_one_or_none()

    def get_cart_by_user_and_status(self, user_id: int, status: str) -> CartModel | None:
        return self.db.execute(
            select(CartModel)
            .where(CartModel.user_id == user_id, CartModel.status == status)
            .order_by(CartModel.updated_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def get_stale_carts(self, status: str, older_than: datetime) -> List[CartModel]:
        return list(
            self.db.execute(
                select(CartModel).where(CartModel.status == status, CartModel.updated_at < older_than)
            ).scalars()
        )

    def create_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.flush()
        return cart

    def add_cart_item(self, cart: CartModel, item: CartItemModel) -> CartItemModel:
        cart.items.append(item)
        self.db.flush()
        return item

    def delete_cart_item(self, cart: CartModel, item: CartItemModel) -> None:
        # delete-orphan usuwa wiersz przy flushu
        cart.items.remove(item)
        self.db.flush()

    def clear_cart_items(self, cart: CartModel) -> None:
        cart.items.clear()
        self.db.flush()

    def delete_cart(self, cart: CartModel) -> None:
        self.db.delete(cart)
        self.db.flush()

    def update_cart_version(self, cart_id: int, old_version: int, new_data: dict) -> int:
        #update ... where id = ? and version = ?, 0 wierszy = ktos nas wyprzedzil
        result = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.version == old_version)
            .values(**new_data)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
