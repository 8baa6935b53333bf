import argparse

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from schema_admin.database import SessionLocal
from schema_admin.models import Module, User, UserPermission
from schema_admin.services.passwords import hash_password
from schema_admin.services.permissions import GRANT_MODES


def _parse_grant(raw: str) -> tuple[str, list[str]]:
    link, _, modes = raw.partition(":")
    selected = [f"has_{mode.strip()}" for mode in modes.split(",") if mode.strip()]
    unknown = [mode for mode in selected if mode not in GRANT_MODES]
    if unknown:
        raise argparse.ArgumentTypeError(f"Unknown permission(s) {', '.join(unknown)} in '{raw}'")
    return link.strip(), selected


def create_user(
    first_name: str,
    surname: str | None,
    email: str,
    password: str,
    role: str = "standard",
    grants: list[tuple[str, list[str]]] | None = None,
) -> None:
    with SessionLocal() as session:
        existing = session.execute(select(User).where(User.email == email)).scalars().first()
        if existing:
            print(f"User already exists: {existing.id} ({existing.email})")
            return

        user = User(
            first_name=first_name,
            surname=surname,
            email=email,
            password=hash_password(password),
            role=role,
        )
        session.add(user)

        for link, modes in grants or []:
            module = session.execute(select(Module).where(Module.link == link)).scalars().first()
            if module is None:
                raise RuntimeError(f"Module '{link}' does not exist")
            user.permissions.append(
                UserPermission(module=module, **{mode: mode in modes for mode in GRANT_MODES})
            )

        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise RuntimeError(f"Failed to create user due to integrity error: {exc}") from exc

        session.refresh(user)
        print(f"Created user {user.id} ({user.email})")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create an admin panel user.")
    parser.add_argument("--first-name", required=True, help="First name of the user")
    parser.add_argument("--surname", default=None, help="Surname of the user")
    parser.add_argument("--email", required=True, help="Email for the new user")
    parser.add_argument("--password", required=True, help="Initial password")
    parser.add_argument(
        "--role",
        default="standard",
        choices=["standard", "admin"],
        help="Admins bypass per-module grants",
    )
    parser.add_argument(
        "--grant",
        action="append",
        type=_parse_grant,
        default=[],
        metavar="LINK[:MODES]",
        help="Grant access to a module, e.g. --grant users:create,edit,delete,export",
    )

    args = parser.parse_args()
    create_user(
        first_name=args.first_name,
        surname=args.surname,
        email=args.email,
        password=args.password,
        role=args.role,
        grants=args.grant,
    )


if __name__ == "__main__":
    main()
