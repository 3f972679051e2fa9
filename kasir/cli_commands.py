"""
Flask CLI commands for stock maintenance.

Commands:
- flask verify-stock: Replay the stock ledger and compare it with live stock
"""

import sys
import uuid

import click
from kasir.database import get_session
from kasir.models import Product
from kasir.services.stock_service import verify_product_stock


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('verify-stock')
    @click.option('--product-id', default=None, help='Only verify this product')
    def verify_stock(product_id):
        """Check that every product's stock ledger reconciles with its live stock."""
        db_session = get_session()
        query = db_session.query(Product).order_by(Product.name)
        if product_id:
            try:
                query = query.filter(Product.id == uuid.UUID(product_id))
            except ValueError:
                click.echo(click.style(f'Invalid product id: {product_id}', fg='red'))
                sys.exit(2)

        products = query.all()
        if not products:
            click.echo('No products to verify.')
            return

        failures = 0
        for product in products:
            report = verify_product_stock(db_session, product)
            if report['consistent']:
                continue
            failures += 1
            detail = report['error'] or f"ledger={report['ledger_stock']} live={report['live_stock']}"
            click.echo(click.style(f"MISMATCH {report['name']} ({report['product_id']}): {detail}", fg='red'))

        db_session.remove()

        if failures:
            click.echo(click.style(f'{failures} of {len(products)} product(s) do not reconcile.', fg='red', bold=True))
            sys.exit(1)
        click.echo(click.style(f'All {len(products)} product(s) reconcile with the stock ledger.', fg='green'))
