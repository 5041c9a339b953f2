from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog product.

    ID DESIGN DECISION:
    Product.id is externally assigned (supplier / merchandiser code) and is the
    key used by carts, CSV imports and image filenames. It never changes.

    Sellable stock does NOT live here. Each purchasable size is a ProductVariant
    row with its own quantity. other_details may carry a product-level "stock"
    counter for items sold without a size dimension (pay-first carts only).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_created", "category", "created_at"),
        db.CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
    )

    id = db.Column(db.String(64), primary_key=True)
    title = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)

    category = db.Column(db.String(128), nullable=False, index=True)
    sub_category = db.Column(db.String(128), nullable=True)

    # Fixed-point money; never float
    price = db.Column(db.Numeric(12, 2), nullable=False)
    tax_rate = db.Column(db.Numeric(5, 2), nullable=True)
    charge_tax = db.Column(db.Boolean, nullable=False, default=False)

    image_urls = db.Column(db.JSON, nullable=False, default=list)
    dimensions = db.Column(db.JSON, nullable=True)
    weight = db.Column(db.JSON, nullable=True)
    other_details = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    variants = db.relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ProductVariant.id",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id!r} title={self.title!r}>"

    def to_dict(self, include_variants: bool = True) -> dict:
        data = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "sub_category": self.sub_category,
            "price": str(self.price) if self.price is not None else None,
            "tax_rate": str(self.tax_rate) if self.tax_rate is not None else None,
            "charge_tax": self.charge_tax,
            "image_urls": list(self.image_urls or []),
            "dimensions": self.dimensions,
            "weight": self.weight,
            "other_details": self.other_details,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_variants:
            data["variants"] = [v.to_dict() for v in self.variants]
        return data


class ProductVariant(db.Model):
    """
    One purchasable size of a product. The Stock Ledger row.

    INVARIANT: quantity >= 0 after every mutation. Enforced by the CHECK
    constraint and by compare-and-set decrements in the order engine; a
    mutation that would go negative is rejected, never clamped.
    """
    __tablename__ = "product_variants"
    __table_args__ = (
        db.UniqueConstraint("product_id", "size", name="uq_product_variants_product_size"),
        db.CheckConstraint("quantity >= 0", name="ck_product_variants_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.String(64),
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    size = db.Column(db.String(64), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product", back_populates="variants")

    def __repr__(self) -> str:
        return f"<ProductVariant id={self.id} product_id={self.product_id!r} size={self.size!r} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "size": self.size,
            "quantity": self.quantity,
        }
