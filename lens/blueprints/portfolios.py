"""Portfolio endpoints."""

from __future__ import annotations

from flask import Blueprint, request

from lens.auth import check_ownership, get_current_user, login_required
from lens.blueprints.common.api import get_json, list_arg, page_args, paginated, success
from lens.errors import AuthzError
from lens.forms.portfolios import PortfolioCreateForm, PortfolioForm
from lens.services import portfolios
from lens.services.photos import search_photos, serialize_photo

portfolios_bp = Blueprint("portfolios", __name__)


def _owned(portfolio_id: str):
    portfolio = portfolios.get_portfolio_or_404(portfolio_id)
    check_ownership(portfolio)
    return portfolio


@portfolios_bp.get("")
def list_public():
    page, limit = page_args()
    pagination = portfolios.search_portfolios(
        term=request.args.get("q") or request.args.get("search"),
        category=request.args.get("category"),
        tags=list_arg("tags"),
        sort=request.args.get("sort", "newest"),
        page=page,
        limit=limit,
    )
    items = [portfolios.serialize_portfolio(p, photo_count=portfolios.photo_count(p.id)) for p in pagination.items]
    return success(paginated(items, pagination))


@portfolios_bp.post("")
@login_required
def create():
    form = PortfolioCreateForm(get_json()).validate_or_raise()
    portfolio = portfolios.create_portfolio(get_current_user(), form.changes())
    return success(portfolios.serialize_portfolio(portfolio, photo_count=0), "Portfolio created successfully", 201)


@portfolios_bp.get("/my")
@login_required
def mine():
    page, limit = page_args(50)
    pagination = portfolios.search_portfolios(
        owner_id=get_current_user().id, include_private=True, page=page, limit=limit
    )
    items = [portfolios.serialize_portfolio(p, photo_count=portfolios.photo_count(p.id)) for p in pagination.items]
    return success(paginated(items, pagination))


@portfolios_bp.get("/default")
@login_required
def default():
    portfolio = portfolios.get_or_create_default(get_current_user())
    return success(portfolios.serialize_portfolio(portfolio, photo_count=portfolios.photo_count(portfolio.id)))


@portfolios_bp.get("/<slug>")
def detail(slug):
    portfolio = portfolios.get_by_slug_or_404(slug)
    viewer = get_current_user()
    if not portfolio.can_view(viewer):
        raise AuthzError("This portfolio is private")
    portfolios.record_view(portfolio, viewer)

    is_owner = viewer is not None and viewer.id == portfolio.user_id
    page, limit = page_args(50)
    pagination = search_photos(
        portfolio_id=portfolio.id,
        public_only=not is_owner,
        page=page,
        limit=limit,
    )
    data = portfolios.serialize_portfolio(
        portfolio,
        photos=[serialize_photo(p, viewer) for p in pagination.items],
        photo_count=pagination.total,
    )
    return success(data)


@portfolios_bp.put("/<portfolio_id>")
@login_required
def update(portfolio_id):
    portfolio = _owned(portfolio_id)
    form = PortfolioForm(get_json()).validate_or_raise()
    portfolio = portfolios.update_portfolio(portfolio, form.changes())
    return success(portfolios.serialize_portfolio(portfolio), "Portfolio updated successfully")


@portfolios_bp.delete("/<portfolio_id>")
@login_required
def delete(portfolio_id):
    portfolio = _owned(portfolio_id)
    portfolios.delete_portfolio(portfolio)
    return success(message="Portfolio deleted successfully")


@portfolios_bp.put("/<portfolio_id>/default")
@login_required
def make_default(portfolio_id):
    portfolio = portfolios.set_default(_owned(portfolio_id))
    return success(portfolios.serialize_portfolio(portfolio), "Default portfolio updated")


@portfolios_bp.get("/<portfolio_id>/analytics")
@login_required
def analytics(portfolio_id):
    portfolio = _owned(portfolio_id)
    return success(portfolios.analytics(portfolio))


@portfolios_bp.post("/<portfolio_id>/duplicate")
@login_required
def duplicate(portfolio_id):
    portfolio = _owned(portfolio_id)
    copy = portfolios.duplicate_portfolio(portfolio, get_current_user())
    return success(
        portfolios.serialize_portfolio(copy, photo_count=portfolios.photo_count(copy.id)),
        "Portfolio duplicated successfully",
        201,
    )
