"""Bootstrap an admin user and print a fresh bearer key for it."""
from app.db import get_sessionmaker, init_engine
from app.models.api_key import ApiKey
from app.models.user import User, UserRole
from app.utils.apikey import gen_key


def main() -> None:
    init_engine()
    db = get_sessionmaker()()

    try:
        admin = db.query(User).filter(User.username == "admin").one_or_none()
        if admin is None:
            admin = User(username="admin", email="admin@gooddeedhub.local", role=UserRole.admin)
            db.add(admin)
            db.flush()

        raw_token, prefix, key_hash = gen_key()
        api_key = ApiKey(
            name=f"admin-{prefix}",
            prefix=prefix,
            key_hash=key_hash,
            user_id=admin.id,
            is_active=True,
        )
        db.add(api_key)
        db.commit()
        db.refresh(api_key)

        print("==========================================")
        print("Admin API key created")
        print("Use this key in your Authorization header:")
        print(f"    Authorization: Bearer {raw_token}")
        print(f"(DB id: {api_key.id}, user id: {admin.id})")
        print("==========================================")
    finally:
        db.close()


if __name__ == "__main__":
    main()
