# stocksync/routes/products.py

from typing import List

from fastapi import APIRouter, HTTPException
from sqlmodel import Session, select

from stocksync.models import Product, ProductCreate, ProductRead, now_utc
from stocksync.routes.deps import SessionDep

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=List[ProductRead], summary="Lister les produits du catalogue")
def list_products(session: Session = SessionDep) -> List[ProductRead]:
    return session.exec(select(Product).order_by(Product.sku)).all()


@router.get("/{sku}", response_model=ProductRead, summary="Récupérer un produit par SKU")
def get_product(sku: str, session: Session = SessionDep) -> ProductRead:
    product = session.exec(select(Product).where(Product.sku == sku)).first()
    if not product:
        raise HTTPException(status_code=404, detail="Produit introuvable")
    return product


@router.post("", response_model=ProductRead, summary="Créer ou mettre à jour un produit (par SKU)")
def upsert_product(payload: ProductCreate, session: Session = SessionDep) -> ProductRead:
    sku = payload.sku.strip()
    if not sku:
        raise HTTPException(status_code=422, detail="SKU vide")

    product = session.exec(select(Product).where(Product.sku == sku)).first()
    data = payload.model_dump(exclude_unset=True)
    data["sku"] = sku

    if product:
        # UPDATE
        for key, value in data.items():
            setattr(product, key, value)
        product.updated_at = now_utc()
    else:
        # CREATE
        product = Product(**data)

    session.add(product)
    session.commit()
    session.refresh(product)
    return product
