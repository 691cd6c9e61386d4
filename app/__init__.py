import click
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from config import config

db = SQLAlchemy()


def create_app(config_name='default'):
    """Application factory — creates and configures the Flask app."""
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    # ── Logging ───────────────────────────────────────────────────
    from app.utils.logging import setup_logging
    setup_logging(app)

    # ── Extensions ────────────────────────────────────────────────
    db.init_app(app)

    # ── Blueprints ────────────────────────────────────────────────
    from app.main import main as main_blueprint
    app.register_blueprint(main_blueprint)

    from app.inventory import inventory as inventory_blueprint
    app.register_blueprint(inventory_blueprint, url_prefix='/inventory')

    from app.sales import sales as sales_blueprint, init_sales
    app.register_blueprint(sales_blueprint, url_prefix='/sales')
    init_sales(app)

    # ── Error Handlers ────────────────────────────────────────────
    register_error_handlers(app)

    # ── CLI Commands ──────────────────────────────────────────────
    register_commands(app)

    return app


def register_error_handlers(app):
    """Every error becomes a JSON notification; none of them end the session."""
    from app.errors import PosError

    @app.errorhandler(PosError)
    def handle_pos_error(error):
        if error.status_code >= 500:
            app.logger.error(f"{type(error).__name__} [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"{type(error).__name__} [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    def internal_error(e):
        db.session.rollback()
        app.logger.error(f"Unhandled exception: {e}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500


def register_commands(app):
    """Register custom Flask CLI commands."""

    @app.cli.command('init-db')
    def init_db():
        """Create all database tables and seed the sale sequence for this year."""
        from datetime import date
        from app.sales.models import SaleSequence

        db.create_all()
        click.echo('✅  Database tables created.')

        # Pre-seed the sequence row so the first sale of the year
        # doesn't have to insert it.
        year = date.today().year
        if not db.session.get(SaleSequence, year):
            db.session.add(SaleSequence(year=year, last_seq=0))
            db.session.commit()
            click.echo(f'✅  Sale sequence seeded for {year}.')
        else:
            click.echo(f'ℹ️   Sale sequence for {year} already exists.')

    @app.cli.command('show-sequence')
    def show_sequence():
        """Print the current sale sequence state."""
        from app.sales.models import SaleSequence

        rows = SaleSequence.query.order_by(SaleSequence.year).all()
        if not rows:
            click.echo('No sequence rows found. Run: flask init-db')
            return

        click.echo(f'{"Year":<8} {"Last Seq":<12} {"Next Sale No"}')
        click.echo('─' * 36)
        for row in rows:
            next_no = f'{row.year}-{row.last_seq + 1:04d}'
            click.echo(f'{row.year:<8} {row.last_seq:<12} {next_no}')

    @app.cli.command('sync-held-bills')
    def sync_held_bills():
        """Push bills held locally while the database was down into it."""
        from app.errors import StoreAdapterError
        from app.sales.held_bills import FallbackHeldBillStore

        store = app.extensions['sales'].store
        if not isinstance(store, FallbackHeldBillStore):
            click.echo('ℹ️   Local held-bill fallback is not enabled (HELD_BILL_LOCAL_FALLBACK).')
            return
        try:
            moved = store.sync()
        except StoreAdapterError as exc:
            click.echo(f'❌  Sync failed: {exc.message}')
            raise SystemExit(1)
        click.echo(f'✅  {moved} held bill(s) synced.')

    @app.cli.command('seed-demo')
    def seed_demo():
        """Populate the catalog with demo items."""
        from decimal import Decimal
        from app.inventory.models import InventoryItem, InventoryLog

        click.echo("🌱 Seeding demo data...")
        db.create_all()

        if InventoryItem.query.count() >= 5:
            click.echo("ℹ️   Catalog already has items; nothing to do.")
            return

        demo = [
            ('CHY001', 'Chyawanprash 500g',      'Tonics',   'JAR', '245.00', 40),
            ('TRI002', 'Triphala Churna 100g',   'Churna',   'PKT', '90.00',  60),
            ('ASH003', 'Ashwagandha Tablets',    'Tablets',  'BTL', '180.00', 35),
            ('BRA004', 'Brahmi Oil 200ml',       'Oils',     'BTL', '150.00', 25),
            ('HON005', 'Honey 250g',             'Foods',    'JAR', '120.00', 50),
            ('GIL006', 'Giloy Juice 1L',         'Juices',   'BTL', '210.00', 20),
            ('TUL007', 'Tulsi Drops 30ml',       'Drops',    'BTL', '95.00',  45),
            ('NEE008', 'Neem Face Wash 100ml',   'Personal', 'TUB', '110.00', 30),
        ]
        for code, name, division, unit, mrp, stock in demo:
            item = InventoryItem(
                item_code=code, item_name=name, barcode=f'890{code[-3:]}{code[:3]}',
                division=division, base_unit=unit, mrp=Decimal(mrp),
                opening_stock=stock, available_stock=stock,
            )
            db.session.add(item)
            db.session.flush()
            db.session.add(InventoryLog(item_id=item.id, old_stock=0, new_stock=stock,
                                        reason="Initial Demo Stock"))

        db.session.commit()
        click.echo(f"✅ {len(demo)} items seeded.")
