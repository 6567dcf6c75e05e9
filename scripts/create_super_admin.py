"""
Crea (o promueve) la cuenta super_admin que aprueba los registros.

Uso:
    python scripts/create_super_admin.py <email> <password> [nombre] [apellido]

Si el email ya existe, la cuenta pasa a super_admin aprobada y se
actualiza su contraseña.
"""

import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import select

# Agregar el directorio raíz al path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.core.security import hash_password  # noqa: E402
from app.database import async_session_factory, engine  # noqa: E402
from app.models.user import User, UserRole, UserStatus  # noqa: E402


async def create_super_admin(
    email: str, password: str, first_name: str, last_name: str
) -> None:
    email = email.strip().lower()

    async with async_session_factory() as db:
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if user is None:
            user = User(
                email=email,
                first_name=first_name,
                last_name=last_name,
            )
            db.add(user)
            action = "creado"
        else:
            action = "actualizado"

        user.password_hash = hash_password(password)
        user.role = UserRole.SUPER_ADMIN
        user.status = UserStatus.APPROVED
        user.approved_at = datetime.now(timezone.utc)

        await db.commit()
        print(f"Super admin {action}: {email}")

    await engine.dispose()


def main() -> None:
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(1)

    email, password = sys.argv[1], sys.argv[2]
    if len(password) < 6:
        print("ERROR: la contraseña debe tener al menos 6 caracteres")
        sys.exit(1)

    first_name = sys.argv[3] if len(sys.argv) > 3 else "Super"
    last_name = sys.argv[4] if len(sys.argv) > 4 else "Admin"
    asyncio.run(create_super_admin(email, password, first_name, last_name))


if __name__ == "__main__":
    main()
