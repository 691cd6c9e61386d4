"""
app/main/routes.py
──────────────────
Health check and the counter dashboard summary.
"""
import shutil
from datetime import datetime, date, time

from flask import current_app, jsonify
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.errors import StoreAdapterError
from app.inventory.models import InventoryItem
from app.main import main
from app.sales.models import Sale


@main.route("/health")
def health():
    """Health check for load balancers and monitoring."""
    status = "ok"
    failures = []

    # 1. DB Check
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        db.session.rollback()
        status = "error"
        failures.append(f"DB: {e}")
        current_app.logger.error(f"Health check failed (DB): {e}")

    # 2. Held-bill store
    try:
        held = len(current_app.extensions['sales'].store.list_all())
    except StoreAdapterError as e:
        held = None
        status = "error"
        failures.append(f"Held bills: {e.message}")

    # 3. Disk Check
    total, used, free = shutil.disk_usage("/")
    percent_free = (free / total) * 100
    if percent_free < 10:
        msg = f"Low Disk Space: {free // (2**30)}GB free ({percent_free:.1f}%)"
        failures.append(msg)
        current_app.logger.warning(msg)
        if status == "ok":
            status = "warning"

    response = {
        "status": status,
        "timestamp": datetime.utcnow().isoformat(),
        "details": {
            "db": "ok" if not any(f.startswith("DB") for f in failures) else "error",
            "held_bills": held,
            "disk_free_gb": free // (2**30),
            "disk_free_percent": round(percent_free, 1)
        }
    }
    if failures:
        response["failures"] = failures

    return jsonify(response), 200 if status != "error" else 500


@main.route('/')
def index():
    """Today's takings, held bills waiting and items running low."""
    start = datetime.combine(date.today(), time.min)

    count, takings, discounts = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.grand_total), 0),
        func.coalesce(func.sum(Sale.total_discount), 0),
    ).filter(Sale.created_at >= start).one()

    active = InventoryItem.query.filter(InventoryItem.status == 'Active').all()
    low_stock = [item.to_dict() for item in active if item.is_low_stock]

    return jsonify({
        'business':         current_app.config.get('BUSINESS_NAME'),
        'sales_today':      count,
        'takings_today':    str(takings),
        'discounts_today':  str(discounts),
        'held_bills':       len(current_app.extensions['sales'].store.list_all()),
        'low_stock':        low_stock,
    })
