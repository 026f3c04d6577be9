"""
Flask CLI commands for operations.

Commands:
- flask init-db: Create all tables
- flask create-owner: Register a company with its OWNER user
- flask backup-tenants: JSON backup of every tenant into BACKUP_DIR
- flask compress-photos: Recompress large stored delivery photos
"""

import click
from flask import current_app
from ealbaran.database import create_all, get_session
from ealbaran.exceptions import AlbaranError


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create database tables."""
        create_all()
        click.echo(click.style('✅ Tablas creadas', fg='green'))

    @app.cli.command('create-owner')
    @click.option('--email', prompt=True, help='Owner email address')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Owner password')
    @click.option('--company', prompt=True, help='Company name')
    @click.option('--name', default=None, help='Owner full name')
    def create_owner(email, password, company, name):
        """Create a company and its OWNER user."""
        from ealbaran.services.auth_service import register_company

        db_session = get_session()
        try:
            user, tenant = register_company(db_session, email, password, company, full_name=name)
        except AlbaranError as e:
            click.echo(click.style(f'❌ {e.message}', fg='red'))
            return

        click.echo(click.style('\n✅ Empresa creada exitosamente!', fg='green', bold=True))
        click.echo(f'   Empresa: {tenant.name} ({tenant.slug})')
        click.echo(f'   Email: {user.email}')
        click.echo(f'   Tenant ID: {tenant.id}')

    @app.cli.command('backup-tenants')
    @click.option('--target-dir', default=None, help='Backup directory (default: BACKUP_DIR)')
    @click.option('--tenant-id', type=int, default=None, help='Back up a single tenant')
    def backup_tenants(target_dir, tenant_id):
        """Write one JSON backup per tenant and prune old files."""
        from ealbaran.services.backup_service import backup_all_tenants, backup_tenant

        db_session = get_session()
        target_dir = target_dir or current_app.config['BACKUP_DIR']

        if tenant_id is not None:
            log = backup_tenant(db_session, tenant_id, target_dir)
            results = {tenant_id: log.status}
        else:
            results = backup_all_tenants(
                db_session, target_dir, current_app.config.get('BACKUP_RETENTION_DAYS', 365)
            )

        for tid, status in results.items():
            color = 'green' if status == 'completed' else 'red'
            click.echo(click.style(f'   Tenant {tid}: {status}', fg=color))

        ok = sum(1 for status in results.values() if status == 'completed')
        click.echo(f'\n📦 {ok}/{len(results)} backups completados en {target_dir}')

    @app.cli.command('compress-photos')
    @click.option('--max-width', type=int, default=None, help='Max width in pixels')
    @click.option('--quality', type=int, default=None, help='JPEG quality (1-95)')
    def compress_photos(max_width, quality):
        """Recompress stored delivery photos over 100KB."""
        from ealbaran.services.photo_service import compress_stored_photos

        result = compress_stored_photos(
            get_session(),
            max_width=max_width or current_app.config.get('PHOTO_MAX_WIDTH', 1280),
            quality=quality or current_app.config.get('PHOTO_JPEG_QUALITY', 70),
        )
        click.echo(click.style(f"✅ {result['compressed']} fotos comprimidas", fg='green'))
        click.echo(f"   Omitidas: {result['skipped']}")
        click.echo(f"   Ahorro: {result['saved_chars'] // 1024}KB")
