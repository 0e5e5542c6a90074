from __future__ import annotations

import hashlib
import hmac
import secrets
import uuid
from typing import Any, Callable

from bol.domain.errors import ConflictError

SQLITE_SCHEMA: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS accounts (
        id TEXT PRIMARY KEY,
        username TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        email TEXT NOT NULL,
        role TEXT NOT NULL CHECK(role IN ('manager','accountant','employee')),
        active INTEGER NOT NULL DEFAULT 1,
        password_hash TEXT NOT NULL,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sessions (
        token TEXT PRIMARY KEY,
        account_id TEXT NOT NULL,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY(account_id) REFERENCES accounts(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id TEXT PRIMARY KEY,
        date TEXT NOT NULL,
        type TEXT NOT NULL CHECK(type IN ('revenue','expense','salaries')),
        description TEXT NOT NULL,
        amount TEXT NOT NULL,
        approved INTEGER NOT NULL DEFAULT 0,
        created_by TEXT NULL,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY(created_by) REFERENCES accounts(id) ON DELETE SET NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS inventory_items (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        quantity TEXT NOT NULL DEFAULT '0' CHECK(CAST(quantity AS REAL) >= 0),
        unit TEXT NOT NULL,
        min_quantity TEXT NOT NULL DEFAULT '0',
        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS inventory_movements (
        id TEXT PRIMARY KEY,
        item_id TEXT NOT NULL,
        kind TEXT NOT NULL CHECK(kind IN ('in','out')),
        qty TEXT NOT NULL,
        unit_price TEXT NOT NULL,
        total TEXT NULL,
        party TEXT NOT NULL,
        date TEXT NOT NULL,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY(item_id) REFERENCES inventory_items(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS projects (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        location TEXT NOT NULL,
        floors INTEGER NOT NULL DEFAULT 0,
        units INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS project_costs (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL,
        type TEXT NOT NULL CHECK(type IN ('construction','operation','expense','other')),
        amount TEXT NOT NULL,
        date TEXT NOT NULL,
        note TEXT NULL,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY(project_id) REFERENCES projects(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS project_sales (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL,
        unit_no TEXT NOT NULL,
        buyer TEXT NOT NULL,
        price TEXT NOT NULL,
        date TEXT NOT NULL,
        terms TEXT NULL,
        area TEXT NULL,
        payment_method TEXT NULL,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY(project_id) REFERENCES projects(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS project_installments (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL,
        sale_id TEXT NOT NULL,
        unit_no TEXT NULL,
        buyer TEXT NULL,
        amount TEXT NOT NULL,
        due_date TEXT NOT NULL,
        paid INTEGER NOT NULL DEFAULT 0,
        paid_at TEXT NULL,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY(project_id) REFERENCES projects(id) ON DELETE CASCADE,
        FOREIGN KEY(sale_id) REFERENCES project_sales(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS installment_reminders (
        id TEXT PRIMARY KEY,
        installment_id TEXT NOT NULL,
        sent_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        note TEXT NULL,
        FOREIGN KEY(installment_id) REFERENCES project_installments(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(date, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_transactions_type ON transactions(type)",
    "CREATE INDEX IF NOT EXISTS idx_transactions_created_by ON transactions(created_by)",
    "CREATE INDEX IF NOT EXISTS idx_inventory_items_name ON inventory_items(name)",
    "CREATE INDEX IF NOT EXISTS idx_inventory_movements_item_date ON inventory_movements(item_id, date, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_projects_created_at ON projects(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_projects_name ON projects(name)",
    "CREATE INDEX IF NOT EXISTS idx_project_costs_project_date ON project_costs(project_id, date)",
    "CREATE INDEX IF NOT EXISTS idx_project_sales_project_date ON project_sales(project_id, date)",
    "CREATE INDEX IF NOT EXISTS idx_project_installments_project_date ON project_installments(project_id, due_date)",
    "CREATE INDEX IF NOT EXISTS idx_project_installments_sale ON project_installments(sale_id)",
    "CREATE INDEX IF NOT EXISTS idx_project_installments_paid ON project_installments(paid)",
    "CREATE INDEX IF NOT EXISTS idx_installment_reminders_installment ON installment_reminders(installment_id)",
)

# MySQL has no CREATE INDEX IF NOT EXISTS, so indexes live inside the table DDL.
MYSQL_SCHEMA: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS accounts (
        id CHAR(36) NOT NULL PRIMARY KEY,
        username VARCHAR(191) NOT NULL UNIQUE,
        name VARCHAR(191) NOT NULL,
        email VARCHAR(191) NOT NULL,
        role ENUM('manager','accountant','employee') NOT NULL DEFAULT 'employee',
        active TINYINT(1) NOT NULL DEFAULT 1,
        password_hash VARCHAR(191) NOT NULL,
        created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    """
    CREATE TABLE IF NOT EXISTS sessions (
        token CHAR(36) NOT NULL PRIMARY KEY,
        account_id CHAR(36) NOT NULL,
        created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CONSTRAINT fk_sessions_account FOREIGN KEY (account_id)
            REFERENCES accounts(id) ON DELETE CASCADE
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id CHAR(36) NOT NULL PRIMARY KEY,
        date DATE NOT NULL,
        type ENUM('revenue','expense','salaries') NOT NULL,
        description TEXT NOT NULL,
        amount DECIMAL(12,2) NOT NULL,
        approved TINYINT(1) NOT NULL DEFAULT 0,
        created_by CHAR(36) NULL,
        created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
        INDEX idx_transactions_date (date, created_at),
        INDEX idx_transactions_type (type),
        INDEX idx_transactions_created_by (created_by),
        CONSTRAINT fk_transactions_account FOREIGN KEY (created_by)
            REFERENCES accounts(id) ON DELETE SET NULL
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    """
    CREATE TABLE IF NOT EXISTS inventory_items (
        id CHAR(36) NOT NULL PRIMARY KEY,
        name VARCHAR(191) NOT NULL,
        quantity DECIMAL(12,2) NOT NULL DEFAULT 0,
        unit VARCHAR(64) NOT NULL,
        min_quantity DECIMAL(12,2) NOT NULL DEFAULT 0,
        updated_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
        INDEX idx_inventory_items_name (name)
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    """
    CREATE TABLE IF NOT EXISTS inventory_movements (
        id CHAR(36) NOT NULL PRIMARY KEY,
        item_id CHAR(36) NOT NULL,
        kind ENUM('in','out') NOT NULL,
        qty DECIMAL(12,2) NOT NULL,
        unit_price DECIMAL(12,2) NOT NULL,
        total DECIMAL(12,2) NULL,
        party VARCHAR(191) NOT NULL,
        date DATE NOT NULL,
        created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
        INDEX idx_inventory_movements_item_date (item_id, date, created_at),
        CONSTRAINT fk_inventory_movements_item FOREIGN KEY (item_id)
            REFERENCES inventory_items(id) ON DELETE CASCADE
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    """
    CREATE TABLE IF NOT EXISTS projects (
        id CHAR(36) NOT NULL PRIMARY KEY,
        name VARCHAR(191) NOT NULL,
        location VARCHAR(191) NOT NULL,
        floors INT NOT NULL DEFAULT 0,
        units INT NOT NULL DEFAULT 0,
        created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
        INDEX idx_projects_created_at (created_at),
        INDEX idx_projects_name (name)
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    """
    CREATE TABLE IF NOT EXISTS project_costs (
        id CHAR(36) NOT NULL PRIMARY KEY,
        project_id CHAR(36) NOT NULL,
        type ENUM('construction','operation','expense','other') NOT NULL,
        amount DECIMAL(12,2) NOT NULL,
        date DATE NOT NULL,
        note TEXT NULL,
        created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
        INDEX idx_project_costs_project_date (project_id, date),
        CONSTRAINT fk_project_costs_project FOREIGN KEY (project_id)
            REFERENCES projects(id) ON DELETE CASCADE
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    """
    CREATE TABLE IF NOT EXISTS project_sales (
        id CHAR(36) NOT NULL PRIMARY KEY,
        project_id CHAR(36) NOT NULL,
        unit_no VARCHAR(191) NOT NULL,
        buyer VARCHAR(191) NOT NULL,
        price DECIMAL(12,2) NOT NULL,
        date DATE NOT NULL,
        terms TEXT NULL,
        area VARCHAR(191) NULL,
        payment_method VARCHAR(191) NULL,
        created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
        INDEX idx_project_sales_project_date (project_id, date),
        CONSTRAINT fk_project_sales_project FOREIGN KEY (project_id)
            REFERENCES projects(id) ON DELETE CASCADE
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    """
    CREATE TABLE IF NOT EXISTS project_installments (
        id CHAR(36) NOT NULL PRIMARY KEY,
        project_id CHAR(36) NOT NULL,
        sale_id CHAR(36) NOT NULL,
        unit_no VARCHAR(191) NULL,
        buyer VARCHAR(191) NULL,
        amount DECIMAL(12,2) NOT NULL,
        due_date DATE NOT NULL,
        paid TINYINT(1) NOT NULL DEFAULT 0,
        paid_at DATE NULL,
        created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
        INDEX idx_project_installments_project_date (project_id, due_date),
        INDEX idx_project_installments_sale (sale_id),
        INDEX idx_project_installments_paid (paid),
        CONSTRAINT fk_project_installments_project FOREIGN KEY (project_id)
            REFERENCES projects(id) ON DELETE CASCADE,
        CONSTRAINT fk_project_installments_sale FOREIGN KEY (sale_id)
            REFERENCES project_sales(id) ON DELETE CASCADE
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    """
    CREATE TABLE IF NOT EXISTS installment_reminders (
        id CHAR(36) NOT NULL PRIMARY KEY,
        installment_id CHAR(36) NOT NULL,
        sent_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
        note VARCHAR(255) NULL,
        INDEX idx_installment_reminders_installment (installment_id),
        CONSTRAINT fk_installment_reminders_installment FOREIGN KEY (installment_id)
            REFERENCES project_installments(id) ON DELETE CASCADE
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
)

BOOTSTRAP_USERNAME = "root"


def seed_privileged_account(db: Any, bootstrap_hash: Callable[[], str]) -> bool:
    """Insert the single ``manager`` account when ``accounts`` is empty.

    ``bootstrap_hash`` is only called when a row is actually written, so the
    one-time secret is not generated for an already seeded store. Losing the
    insert race to another process counts as already seeded.
    """
    rows = db.query("SELECT COUNT(*) AS n FROM accounts")
    if int(rows[0]["n"]) > 0:
        return False
    try:
        db.query(
            """
            INSERT INTO accounts (id, username, name, email, role, active, password_hash)
            VALUES (?, ?, ?, ?, 'manager', 1, ?)
            """,
            (str(uuid.uuid4()), BOOTSTRAP_USERNAME, "Manager", "admin@example.com", bootstrap_hash()),
        )
    except ConflictError:
        return False
    return True


def hash_password(secret: str, *, rounds: int = 200_000, salt: str | None = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", secret.encode("utf-8"), bytes.fromhex(salt), rounds).hex()
    return f"pbkdf2_sha256${rounds}${salt}${digest}"


def verify_password(stored: str, provided: str) -> bool:
    try:
        _algo, rounds_s, salt, digest = stored.split("$", 3)
        candidate = hashlib.pbkdf2_hmac(
            "sha256",
            provided.encode("utf-8"),
            bytes.fromhex(salt),
            int(rounds_s),
        ).hex()
    except ValueError:
        return False
    return hmac.compare_digest(candidate, digest)
