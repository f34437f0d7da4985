"""Informational page routes"""

from fastapi import APIRouter, Request

from storefront.core.templates import templates

router = APIRouter()


@router.get("/")
async def home(request: Request):
    """Landing page"""
    return templates.TemplateResponse(request, "home.html", {"title": "Welcome Home"})


@router.get("/about")
async def about(request: Request):
    """About page"""
    return templates.TemplateResponse(request, "about.html", {"title": "About Me"})


@router.get("/products")
async def products(request: Request):
    """Products page"""
    return templates.TemplateResponse(request, "products.html", {"title": "Our Products"})
