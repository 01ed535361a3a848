#!/usr/bin/env python
"""Idempotent bootstrap for the initial system admin account.

Usage:
    python backend/scripts/seed_admin.py               # create schema if missing + admin user
    python backend/scripts/seed_admin.py --show-roles  # also print role -> permission summary
    python backend/scripts/seed_admin.py --dry-run     # run logic then rollback (no DB changes)
    python backend/scripts/seed_admin.py --export-json roles.json
"""
from __future__ import annotations
import os, sys, argparse, textwrap, json, hashlib
from sqlalchemy import select, text

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from storerate import create_app, get_db  # type: ignore
from storerate.constants.permissions import Role
from storerate.models.authz import User, Base
from storerate.services.policy import DEFAULT_REGISTRY, get_roles, get_role_permissions


def ensure_schema(session):
    try:
        session.execute(text('SELECT 1 FROM users LIMIT 1'))
    except Exception:
        # Bootstrap fallback; in a real environment prefer `alembic upgrade head`
        session.rollback()
        import storerate.models.store  # noqa: F401
        import storerate.models.rating  # noqa: F401
        import storerate.models.audit  # noqa: F401
        Base.metadata.create_all(session.get_bind())


def ensure_initial_admin(session) -> bool:
    admin_email = os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com').lower()
    existing = session.execute(select(User).where(User.email == admin_email)).scalar_one_or_none()
    if existing:
        if existing.role != Role.SYSTEM_ADMIN.value:
            print(f"[WARN] {admin_email} exists with role {existing.role}; not promoting automatically")
        return False
    user = User(name=os.getenv('SEED_ADMIN_NAME', 'System Administrator'), email=admin_email,
                role=Role.SYSTEM_ADMIN.value, password_hash='')
    user.set_password(os.getenv('SEED_ADMIN_PASSWORD', 'ChangeMe123!'))
    session.add(user)
    session.flush()
    print(f"[INFO] Created initial admin user {admin_email} with temporary password.")
    return True


def build_role_permission_map():
    return {r: get_role_permissions(r, DEFAULT_REGISTRY) for r in get_roles()}


def print_role_summary():
    rows = build_role_permission_map()
    name_w = max(len(r) for r in rows)
    print(f"{'Role'.ljust(name_w)} | Rank | Count | Sample (up to 6)")
    print('-' * (name_w + 50))
    for name, perms in rows.items():
        rank = DEFAULT_REGISTRY.rank(name)
        print(f"{name.ljust(name_w)} | {str(rank).rjust(4)} | {str(len(perms)).rjust(5)} | {', '.join(perms[:6])}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Bootstrap schema and the initial system admin",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_admin.py\n  dry run: seed_admin.py --dry-run\n  show roles: seed_admin.py --show-roles\n""")
    )
    p.add_argument('--show-roles', action='store_true', help='Print role permission summary')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    p.add_argument('--export-json', nargs='?', const='-', metavar='FILE', help='Export role->permissions JSON (to FILE or stdout if omitted)')
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    app = create_app({'AUDIT_ASYNC': False})
    with app.app_context():
        session = get_db()
        try:
            ensure_schema(session)
            created = ensure_initial_admin(session)
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] (rolled back) admin would be created: {created}")
            else:
                session.commit()
                print(f"[DONE] admin created: {created}")
            if args.show_roles:
                print('\nRole Permission Summary:')
                print_role_summary()
            if args.export_json is not None:
                mapping = build_role_permission_map()
                canonical = json.dumps(mapping, sort_keys=True, separators=(',', ':'))
                payload = {
                    'roles': mapping,
                    'meta': {
                        'roles_checksum_sha256': hashlib.sha256(canonical.encode('utf-8')).hexdigest(),
                        'hierarchy': {r: DEFAULT_REGISTRY.rank(r) for r in get_roles()},
                    },
                }
                if args.export_json == '-':
                    print(json.dumps(payload, indent=2, sort_keys=True))
                else:
                    with open(args.export_json, 'w', encoding='utf-8') as f:
                        json.dump(payload, f, indent=2, sort_keys=True)
                    print(f"[INFO] Exported JSON to {args.export_json}")
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

if __name__ == '__main__':
    main()
