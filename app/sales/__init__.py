"""
app/sales/__init__.py
---------------------
Sales terminal blueprint. URL prefix: /sales

init_sales() builds the collaborators the lifecycle needs once per app
and keeps them in app.extensions['sales'].
"""
from dataclasses import dataclass

from flask import Blueprint

sales = Blueprint('sales', __name__)


@dataclass
class SalesServices:
    gateway:    object
    catalog:    object
    store:      object
    repository: object
    emitter:    object
    busy_board: object


def init_sales(app):
    from app.inventory.gateway import SqlCatalog, SqlStockGateway
    from app.sales.held_bills import build_held_bill_store
    from app.sales.receipt import ReceiptEmitter
    from app.sales.records import SqlSaleRepository
    from app.sales.busy import build_busy_board

    app.extensions['sales'] = SalesServices(
        gateway=SqlStockGateway(),
        catalog=SqlCatalog(default_limit=app.config.get('CATALOG_SEARCH_LIMIT', 20)),
        store=build_held_bill_store(app),
        repository=SqlSaleRepository(),
        emitter=ReceiptEmitter.from_config(app.config),
        busy_board=build_busy_board(app),
    )


from app.sales import routes  # noqa: F401, E402
from app.sales import models  # noqa: F401, E402  registers the sales tables with SQLAlchemy
