"""
vault/seed.py -- Sample data for development and demos.

Builds four OUs with ten divisions each, three users (admin, manager, user)
and one sample credential per division. seed_sample_data(reset=True) empties
both stores first, so running it twice yields the same data set (with new
ids). With reset=False, OUs, divisions and users that already exist under
the sample names are reused, so only the missing pieces are added.

This is the only vault/ module that imports from auth/: seeding users needs
the password hasher and the User model.
"""

import logging

from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import hash_password
from vault.models import Credential, Division, OrganizationalUnit
from vault.store import VaultStore

logger = logging.getLogger("credvault.vault")

SAMPLE_OUS: dict[str, tuple[str, list[str]]] = {
    "News Management": (
        "Handles news content",
        ["Admin", "IT", "Finance", "Tech News", "Writing", "Editing", "Research", "Marketing", "HR", "Legal"],
    ),
    "Software Reviews": (
        "Reviews software products",
        [
            "Admin",
            "IT",
            "Finance",
            "Web Development",
            "Mobile Development",
            "Cloud Computing",
            "DevOps",
            "AI",
            "Cybersecurity",
            "Database Management",
        ],
    ),
    "Hardware Reviews": (
        "Reviews hardware products",
        [
            "Admin",
            "IT",
            "Finance",
            "Laptops",
            "Desktops",
            "Servers",
            "Networking",
            "Peripherals",
            "Storage",
            "Gaming Hardware",
        ],
    ),
    "Opinion Publishing": (
        "Publishes opinion pieces",
        [
            "Admin",
            "IT",
            "Finance",
            "Tech Opinions",
            "Gaming Opinions",
            "Future Tech",
            "Social Media",
            "Politics",
            "Entertainment",
            "Lifestyle",
        ],
    ),
}

# username -> (password, role); memberships are assigned below.
SAMPLE_USERS: dict[str, tuple[str, Role]] = {
    "admin": ("admin123", Role.ADMIN),
    "manager": ("manager123", Role.MANAGEMENT),
    "user": ("user123", Role.NORMAL),
}


def seed_sample_data(users: UserStore, vault: VaultStore, reset: bool = True) -> dict[str, int]:
    """Populate both stores with the sample hierarchy, users and credentials.

    Returns counts of the entities created by this call, per type.
    """
    if reset:
        logger.info("Clearing existing data")
        users.clear()
        vault.clear()

    existing_ous = {ou.name: ou.id for ou in vault.list_ous()}
    ou_ids: dict[str, str] = {}
    created_ous = 0
    divisions: list[Division] = []
    new_divisions: list[Division] = []
    for ou_name, (description, division_names) in SAMPLE_OUS.items():
        ou_id = existing_ous.get(ou_name)
        if ou_id is None:
            ou_id = vault.create_ou(OrganizationalUnit(name=ou_name, description=description))
            created_ous += 1
        ou_ids[ou_name] = ou_id
        existing_divisions = {d.name: d for d in vault.list_divisions(ou_id)}
        for name in division_names:
            division = existing_divisions.get(name)
            if division is None:
                division = Division(name=name, ou_id=ou_id, description=f"Handles {name}")
                division.id = vault.create_division(division)
                new_divisions.append(division)
            divisions.append(division)

    all_ous = list(ou_ids.values())
    all_divisions = [d.id for d in divisions]
    software = ou_ids["Software Reviews"]
    memberships = {
        "admin": (all_ous, all_divisions),
        "manager": (all_ous, all_divisions),
        "user": ([software], [d.id for d in divisions if d.ou_id == software]),
    }
    created_users = 0
    for username, (password, role) in SAMPLE_USERS.items():
        if users.get_by_username(username) is not None:
            logger.info("Keeping existing user %s", username)
            continue
        ous, division_ids = memberships[username]
        users.create_user(
            User(
                username=username,
                role=role,
                hashed_password=hash_password(password),
                ous=ous,
                divisions=division_ids,
            )
        )
        created_users += 1

    for division in new_divisions:
        vault.create_credential(
            Credential(
                title=f"Sample Credential for {division.name}",
                username="sampleuser",
                password="samplepassword",
                url="https://example.com",
                division_id=division.id,
            )
        )

    counts = {
        "ous": created_ous,
        "divisions": len(new_divisions),
        "users": created_users,
        "credentials": len(new_divisions),
    }
    logger.info("Seeded %s", counts)
    return counts
