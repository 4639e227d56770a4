"""Music catalog, invoice and customer lookup tools over a Chinook-style SQLite database.

All tools take their connection at construction time and only ever run
parameterized queries. ``create_demo_database`` builds a tiny in-memory
catalog for --mock runs and tests; point ``--db`` at a full Chinook file for
real data.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Any

from threadgraph.runner.tool_registry import ToolRegistry, tool

logger = logging.getLogger(__name__)

SONG_LIMIT = 8


def _rows(conn: sqlite3.Connection, query: str, params: tuple[Any, ...] = ()) -> list[dict]:
    cursor = conn.execute(query, params)
    columns = [c[0] for c in cursor.description]
    return [dict(zip(columns, row, strict=True)) for row in cursor.fetchall()]


class MusicCatalogTools:
    """Read-only lookups over Artist, Album, Track and Genre."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    @tool(description="Get albums by an artist. Matches partial artist names.")
    def get_albums_by_artist(self, artist: str) -> list[dict]:
        return _rows(
            self.conn,
            """
            SELECT Album.Title, Artist.Name
            FROM Album
            JOIN Artist ON Album.ArtistId = Artist.ArtistId
            WHERE Artist.Name LIKE ?
            """,
            (f"%{artist}%",),
        )

    @tool(description="Get songs by an artist (or similar artists).")
    def get_tracks_by_artist(self, artist: str) -> list[dict]:
        return _rows(
            self.conn,
            """
            SELECT Track.Name AS SongName, Artist.Name AS ArtistName
            FROM Album
            LEFT JOIN Artist ON Album.ArtistId = Artist.ArtistId
            LEFT JOIN Track ON Track.AlbumId = Album.AlbumId
            WHERE Artist.Name LIKE ?
            """,
            (f"%{artist}%",),
        )

    @tool(description="Fetch songs from the database that match a specific genre.")
    def get_songs_by_genre(self, genre: str) -> list[dict]:
        genre_ids = [
            row["GenreId"]
            for row in _rows(self.conn, "SELECT GenreId FROM Genre WHERE Name LIKE ?", (f"%{genre}%",))
        ]
        if not genre_ids:
            return []
        placeholders = ", ".join("?" for _ in genre_ids)
        return _rows(
            self.conn,
            f"""
            SELECT Track.Name AS SongName, Artist.Name AS ArtistName
            FROM Track
            LEFT JOIN Album ON Track.AlbumId = Album.AlbumId
            LEFT JOIN Artist ON Album.ArtistId = Artist.ArtistId
            WHERE Track.GenreId IN ({placeholders})
            GROUP BY Artist.Name
            LIMIT ?
            """,
            (*genre_ids, SONG_LIMIT),
        )

    @tool(description="Check if a song exists by its name.")
    def check_for_songs(self, song_title: str) -> list[dict]:
        return _rows(self.conn, "SELECT * FROM Track WHERE Name LIKE ?", (f"%{song_title}%",))


class InvoiceTools:
    """Read-only lookups over Invoice, InvoiceLine and Employee."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    @tool(
        description=(
            "Look up all invoices for a customer using their ID. The invoices are sorted "
            "by invoice date, most recent first."
        )
    )
    def get_invoices_by_customer_sorted_by_date(self, customer_id: int) -> list[dict]:
        return _rows(
            self.conn,
            "SELECT * FROM Invoice WHERE CustomerId = ? ORDER BY InvoiceDate DESC",
            (customer_id,),
        )

    @tool(
        description=(
            "Look up all invoices for a customer, sorted by unit price from highest to lowest."
        )
    )
    def get_invoices_sorted_by_unit_price(self, customer_id: int) -> list[dict]:
        return _rows(
            self.conn,
            """
            SELECT Invoice.*, InvoiceLine.UnitPrice
            FROM Invoice
            JOIN InvoiceLine ON Invoice.InvoiceId = InvoiceLine.InvoiceId
            WHERE Invoice.CustomerId = ?
            ORDER BY InvoiceLine.UnitPrice DESC
            """,
            (customer_id,),
        )

    @tool(
        description=(
            "Get the employee who supports the customer on a given invoice. "
            "Needs both the invoice ID and the customer ID."
        )
    )
    def get_employee_by_invoice_and_customer(self, invoice_id: int, customer_id: int) -> list[dict]:
        return _rows(
            self.conn,
            """
            SELECT Employee.FirstName, Employee.Title, Employee.Email
            FROM Employee
            JOIN Customer ON Customer.SupportRepId = Employee.EmployeeId
            JOIN Invoice ON Invoice.CustomerId = Customer.CustomerId
            WHERE Invoice.InvoiceId = ? AND Invoice.CustomerId = ?
            """,
            (invoice_id, customer_id),
        )


class SqliteCustomerDirectory:
    """Resolves a customer identifier (id, +phone, email) to a customer id."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def resolve(self, identifier: str) -> str | None:
        identifier = identifier.strip()
        if not identifier:
            return None
        if identifier.isdigit():
            query, value = "SELECT CustomerId FROM Customer WHERE CustomerId = ?", int(identifier)
        elif identifier.startswith("+"):
            query, value = "SELECT CustomerId FROM Customer WHERE Phone = ?", identifier
        elif "@" in identifier:
            query, value = "SELECT CustomerId FROM Customer WHERE Email = ?", identifier
        else:
            return None
        row = self.conn.execute(query, (value,)).fetchone()
        return str(row[0]) if row else None


def music_registry(conn: sqlite3.Connection) -> ToolRegistry:
    registry = ToolRegistry()
    registry.register_tools_from(MusicCatalogTools(conn))
    return registry


def invoice_registry(conn: sqlite3.Connection) -> ToolRegistry:
    registry = ToolRegistry()
    registry.register_tools_from(InvoiceTools(conn))
    return registry


def connect(db_path: Path | str) -> sqlite3.Connection:
    """Open an existing Chinook database."""
    db_path = Path(db_path)
    if not db_path.exists():
        raise FileNotFoundError(f"Chinook database not found: {db_path}")
    return sqlite3.connect(db_path)


_DEMO_SCHEMA = """
CREATE TABLE Artist (ArtistId INTEGER PRIMARY KEY, Name TEXT);
CREATE TABLE Genre (GenreId INTEGER PRIMARY KEY, Name TEXT);
CREATE TABLE Album (AlbumId INTEGER PRIMARY KEY, Title TEXT, ArtistId INTEGER);
CREATE TABLE Track (
    TrackId INTEGER PRIMARY KEY, Name TEXT, AlbumId INTEGER, GenreId INTEGER,
    Composer TEXT, Milliseconds INTEGER, UnitPrice REAL
);
CREATE TABLE Employee (
    EmployeeId INTEGER PRIMARY KEY, FirstName TEXT, LastName TEXT, Title TEXT, Email TEXT
);
CREATE TABLE Customer (
    CustomerId INTEGER PRIMARY KEY, FirstName TEXT, LastName TEXT, Email TEXT, Phone TEXT,
    SupportRepId INTEGER
);
CREATE TABLE Invoice (
    InvoiceId INTEGER PRIMARY KEY, CustomerId INTEGER, InvoiceDate TEXT, Total REAL
);
CREATE TABLE InvoiceLine (
    InvoiceLineId INTEGER PRIMARY KEY, InvoiceId INTEGER, TrackId INTEGER,
    UnitPrice REAL, Quantity INTEGER
);
"""

_DEMO_ROWS: dict[str, list[tuple]] = {
    "Artist": [(1, "AC/DC"), (2, "The Rolling Stones"), (3, "Miles Davis")],
    "Genre": [(1, "Rock"), (2, "Jazz")],
    "Album": [
        (1, "For Those About To Rock We Salute You", 1),
        (2, "Let There Be Rock", 1),
        (3, "Hot Rocks, 1964-1971", 2),
        (4, "Kind of Blue", 3),
    ],
    "Track": [
        (1, "For Those About To Rock (We Salute You)", 1, 1, "Angus Young", 343719, 0.99),
        (2, "Whole Lotta Rosie", 2, 1, "Angus Young", 323761, 0.99),
        (3, "Paint It Black", 3, 1, "Jagger/Richards", 214000, 0.99),
        (4, "So What", 4, 2, "Miles Davis", 562000, 1.99),
    ],
    "Employee": [
        (1, "Jane", "Peacock", "Sales Support Agent", "jane@chinookcorp.com"),
        (2, "Steve", "Johnson", "Sales Support Agent", "steve@chinookcorp.com"),
    ],
    "Customer": [
        (1, "Luís", "Gonçalves", "luisg@embraer.com.br", "+55 (12) 3923-5555", 1),
        (2, "Leonie", "Köhler", "leonekohler@surfeu.de", "+49 0711 2842222", 2),
    ],
    "Invoice": [
        (1, 1, "2025-01-11 00:00:00", 3.98),
        (2, 1, "2025-03-04 00:00:00", 1.99),
        (3, 2, "2025-02-01 00:00:00", 0.99),
    ],
    "InvoiceLine": [
        (1, 1, 1, 0.99, 1),
        (2, 1, 3, 0.99, 1),
        (3, 2, 4, 1.99, 1),
        (4, 3, 2, 0.99, 1),
    ],
}


def create_demo_database() -> sqlite3.Connection:
    """In-memory catalog with a few artists, two customers and their invoices."""
    conn = sqlite3.connect(":memory:")
    conn.executescript(_DEMO_SCHEMA)
    for table, rows in _DEMO_ROWS.items():
        placeholders = ", ".join("?" for _ in rows[0])
        conn.executemany(f"INSERT INTO {table} VALUES ({placeholders})", rows)
    conn.commit()
    logger.debug("Created in-memory demo catalog")
    return conn
