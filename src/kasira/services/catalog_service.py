from __future__ import annotations

import logging
from typing import Optional

from kasira.domain.errors import NotFoundError, UnauthorizedBranchError, ValidationError
from kasira.domain.models import Branch, Category, Product, SHARED_CATEGORY, User
from kasira.services.account_service import require_action
from kasira.services.notifier import STOCK_CHANGED, branch_channel

log = logging.getLogger(__name__)

DEFAULT_IMAGE_URL = "https://images.unsplash.com/photo-1546069901-ba9599a7e63c?w=500"


def _required(value: str, label: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{label} is required.")
    return cleaned


def _validate_pricing(price: float, cost_price: float) -> None:
    if price <= 0:
        raise ValidationError("Price must be > 0.")
    if cost_price < 0:
        raise ValidationError("Cost must be >= 0.")


class CatalogService:
    def __init__(self, repo, notifier, low_stock_threshold: int = 10):
        self.repo = repo
        self.notifier = notifier
        self.low_stock_threshold = low_stock_threshold

    # ---------- Branches ----------
    def list_branches(self, owner_id: str) -> list[Branch]:
        return self.repo.list_branches(owner_id)

    def get_branch(self, branch_id: str) -> Branch:
        branch = self.repo.get_branch(branch_id)
        if not branch:
            raise NotFoundError("Branch not found.")
        return branch

    def _owned_branch(self, actor: User, branch_id: str) -> Branch:
        branch = self.get_branch(branch_id)
        if branch.owner_id != actor.id:
            raise UnauthorizedBranchError("Branch belongs to another owner.")
        return branch

    def create_branch(self, actor: User, name: str, location: str) -> Branch:
        require_action(actor, "manage_branches")
        branch = Branch(
            id=self.repo.new_id("BR"),
            name=_required(name, "Branch name"),
            location=(location or "").strip(),
            owner_id=actor.id,
        )
        self.repo.create_branch(branch)
        log.info("branch_created branch=%s owner=%s", branch.id, actor.id)
        return branch

    def update_branch(self, actor: User, branch_id: str, name: str, location: str) -> Branch:
        require_action(actor, "manage_branches")
        self._owned_branch(actor, branch_id)
        if not self.repo.update_branch(branch_id, _required(name, "Branch name"), (location or "").strip()):
            raise NotFoundError("Branch not found.")
        return self.get_branch(branch_id)

    def delete_branch(self, actor: User, branch_id: str) -> None:
        """Remove a branch together with its products, categories and cashiers."""
        require_action(actor, "manage_branches")
        self._owned_branch(actor, branch_id)
        if not self.repo.delete_branch_cascade(branch_id):
            raise NotFoundError("Branch not found.")
        log.info("branch_deleted branch=%s actor=%s", branch_id, actor.id)

    # ---------- Categories ----------
    def list_categories(self, branch_id: Optional[str] = None) -> list[Category]:
        return self.repo.list_categories(branch_id)

    def create_category(self, actor: User, name: str, branch_id: str = SHARED_CATEGORY) -> Category:
        require_action(actor, "manage_products")
        if branch_id != SHARED_CATEGORY:
            self._owned_branch(actor, branch_id)
        category = Category(id=self.repo.new_id("CAT"), name=_required(name, "Category name"), branch_id=branch_id)
        return self.repo.create_category(category)

    def delete_category(self, actor: User, category_id: str) -> None:
        require_action(actor, "manage_products")
        if not self.repo.delete_category(category_id):
            raise NotFoundError("Category not found.")

    # ---------- Products ----------
    def list_products(self, branch_id: Optional[str] = None) -> list[Product]:
        if branch_id == "all":
            branch_id = None
        return self.repo.list_products(branch_id)

    def get_product(self, product_id: str) -> Product:
        product = self.repo.get_product(product_id)
        if not product:
            raise NotFoundError("Product not found.")
        return product

    def create_product(
        self,
        actor: User,
        branch_id: str,
        name: str,
        category: str,
        price: float,
        cost_price: float,
        stock: int,
        image_url: str = "",
    ) -> Product:
        require_action(actor, "manage_products")
        self._owned_branch(actor, branch_id)
        _validate_pricing(float(price), float(cost_price))
        if int(stock) < 0:
            raise ValidationError("Stock must be >= 0.")
        product = Product(
            id=self.repo.new_id("PRD"),
            name=_required(name, "Product name"),
            category=(category or "").strip(),
            branch_id=branch_id,
            price=float(price),
            cost_price=float(cost_price),
            stock=int(stock),
            image_url=(image_url or "").strip() or DEFAULT_IMAGE_URL,
        )
        self.repo.create_product(product)
        log.info("product_created product=%s branch=%s", product.id, branch_id)
        return product

    def update_product(
        self,
        actor: User,
        product_id: str,
        name: Optional[str] = None,
        category: Optional[str] = None,
        price: Optional[float] = None,
        cost_price: Optional[float] = None,
        image_url: Optional[str] = None,
    ) -> Product:
        require_action(actor, "manage_products")
        current = self.get_product(product_id)
        self._owned_branch(actor, current.branch_id)

        new_price = float(price) if price is not None else current.price
        new_cost = float(cost_price) if cost_price is not None else current.cost_price
        _validate_pricing(new_price, new_cost)

        updated = self.repo.update_product(
            product_id,
            _required(name, "Product name") if name is not None else current.name,
            category.strip() if category is not None else current.category,
            new_price,
            new_cost,
            image_url.strip() if image_url is not None else current.image_url,
        )
        if not updated:
            raise NotFoundError("Product not found.")
        return self.get_product(product_id)

    def delete_product(self, actor: User, product_id: str) -> None:
        require_action(actor, "manage_products")
        product = self.get_product(product_id)
        self._owned_branch(actor, product.branch_id)
        if not self.repo.delete_product(product_id):
            raise NotFoundError("Product not found.")
        log.info("product_deleted product=%s actor=%s", product_id, actor.id)

    def adjust_stock(self, actor: User, product_id: str, amount: int, note: Optional[str] = None) -> Product:
        require_action(actor, "adjust_stock")
        if int(amount) == 0:
            raise ValidationError("Adjustment amount must not be 0.")
        product = self.get_product(product_id)
        self._owned_branch(actor, product.branch_id)

        updated = self.repo.adjust_stock(product_id, int(amount))
        if updated is None:
            raise ValidationError(f"Stock cannot be negative. Available: {product.stock}")

        log.info(
            "stock_adjusted product=%s delta=%s stock=%s note=%s actor=%s",
            product_id, amount, updated.stock, note, actor.id,
        )
        self.notifier.publish(
            branch_channel(updated.branch_id),
            STOCK_CHANGED,
            {"product_id": updated.id, "stock": updated.stock, "note": note},
        )
        return updated

    def low_stock(self, branch_id: Optional[str] = None, threshold: Optional[int] = None) -> list[Product]:
        limit = self.low_stock_threshold if threshold is None else int(threshold)
        return self.repo.list_low_stock(branch_id, limit)

    def low_stock_for_owner(
        self, actor: User, branch_id: Optional[str] = None, threshold: Optional[int] = None
    ) -> list[Product]:
        require_action(actor, "view_reports")
        if branch_id not in (None, "all"):
            self._owned_branch(actor, branch_id)
            return self.low_stock(branch_id, threshold)
        found: list[Product] = []
        for branch in self.repo.list_branches(actor.id):
            found.extend(self.low_stock(branch.id, threshold))
        return sorted(found, key=lambda p: (p.stock, p.name))
