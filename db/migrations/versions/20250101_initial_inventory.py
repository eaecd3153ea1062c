# NG-HEADER: Nombre de archivo: 20250101_initial_inventory.py
# NG-HEADER: Ubicación: db/migrations/versions/20250101_initial_inventory.py
# NG-HEADER: Descripción: Esquema inicial del inventario (catálogo, pedidos, salidas, movimientos).
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""initial inventory schema"""

from alembic import op
import sqlalchemy as sa

from db.migrations.util import has_table

# revision identifiers, used by Alembic.
revision = "20250101_initial_inventory"
down_revision = None
branch_labels = None
depends_on = None


def _pk(table: str) -> sa.PrimaryKeyConstraint:
    return sa.PrimaryKeyConstraint("id", name=op.f(f"pk_{table}"))


def _fk(table: str, column: str, target: str, ondelete: str | None = None) -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(
        [column], [f"{target}.id"], name=op.f(f"fk_{table}_{column}_{target}"), ondelete=ondelete
    )


def _ck(table: str, name: str, sql: str) -> sa.CheckConstraint:
    return sa.CheckConstraint(sql, name=op.f(f"ck_{table}_{name}"))


def upgrade() -> None:
    bind = op.get_bind()

    if not has_table(bind, "roles"):
        op.create_table(
            "roles",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("nombre", sa.String(length=50), nullable=False),
            _pk("roles"),
            sa.UniqueConstraint("nombre", name=op.f("uq_roles_nombre")),
        )

    if not has_table(bind, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("nombre", sa.String(length=100), nullable=False),
            sa.Column("apellido", sa.String(length=100), nullable=True),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("password_hash", sa.String(length=200), nullable=False),
            sa.Column("role_id", sa.Integer(), nullable=False),
            sa.Column("activo", sa.Boolean(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            _pk("users"),
            _fk("users", "role_id", "roles"),
            sa.UniqueConstraint("email", name=op.f("uq_users_email")),
        )

    if not has_table(bind, "sessions"):
        op.create_table(
            "sessions",
            sa.Column("id", sa.String(length=64), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("role", sa.String(length=50), nullable=False),
            sa.Column("csrf_token", sa.String(length=100), nullable=False),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("ip", sa.String(length=100), nullable=True),
            sa.Column("user_agent", sa.String(length=200), nullable=True),
            _pk("sessions"),
            _fk("sessions", "user_id", "users", "CASCADE"),
        )

    if not has_table(bind, "suplidores"):
        op.create_table(
            "suplidores",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("nombre_empresa", sa.String(length=200), nullable=False),
            sa.Column("contacto", sa.String(length=200), nullable=True),
            sa.Column("telefono", sa.String(length=50), nullable=True),
            sa.Column("email", sa.String(length=200), nullable=True),
            sa.Column("direccion", sa.Text(), nullable=True),
            sa.Column("activo", sa.Boolean(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            _pk("suplidores"),
            sa.UniqueConstraint("nombre_empresa", name=op.f("uq_suplidores_nombre_empresa")),
        )

    for table in ("tipos_producto", "marcas"):
        if not has_table(bind, table):
            op.create_table(
                table,
                sa.Column("id", sa.Integer(), nullable=False),
                sa.Column("nombre", sa.String(length=100), nullable=False),
                _pk(table),
                sa.UniqueConstraint("nombre", name=op.f(f"uq_{table}_nombre")),
            )

    if not has_table(bind, "modelos"):
        op.create_table(
            "modelos",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("nombre", sa.String(length=100), nullable=False),
            sa.Column("marca_id", sa.Integer(), nullable=False),
            sa.Column("tipo_producto_id", sa.Integer(), nullable=False),
            _pk("modelos"),
            _fk("modelos", "marca_id", "marcas"),
            _fk("modelos", "tipo_producto_id", "tipos_producto"),
            sa.UniqueConstraint("marca_id", "nombre", name="uq_modelos_marca_nombre"),
        )

    if not has_table(bind, "productos"):
        op.create_table(
            "productos",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("nombre", sa.String(length=200), nullable=False),
            sa.Column("descripcion", sa.Text(), nullable=True),
            sa.Column("tipo_producto_id", sa.Integer(), nullable=True),
            sa.Column("marca_id", sa.Integer(), nullable=True),
            sa.Column("modelo_id", sa.Integer(), nullable=True),
            sa.Column("suplidor_id", sa.Integer(), nullable=True),
            sa.Column("precio_tienda", sa.Numeric(12, 2), nullable=False),
            sa.Column("precio_ruta", sa.Numeric(12, 2), nullable=False),
            sa.Column("stock_actual", sa.Integer(), nullable=False),
            sa.Column("stock_minimo", sa.Integer(), nullable=False),
            sa.Column("stock_maximo", sa.Integer(), nullable=False),
            sa.Column("disponible", sa.Boolean(), nullable=False),
            sa.Column("motivo_no_disponible", sa.String(length=200), nullable=True),
            sa.Column("ultima_fecha_movimiento", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            _pk("productos"),
            _fk("productos", "tipo_producto_id", "tipos_producto"),
            _fk("productos", "marca_id", "marcas"),
            _fk("productos", "modelo_id", "modelos"),
            _fk("productos", "suplidor_id", "suplidores", "SET NULL"),
            _ck("productos", "stock_actual_no_negativo", "stock_actual >= 0"),
            _ck("productos", "stock_minimo_no_negativo", "stock_minimo >= 0"),
            _ck("productos", "stock_maximo_no_negativo", "stock_maximo >= 0"),
        )

    if not has_table(bind, "pedido_estados"):
        op.create_table(
            "pedido_estados",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("nombre", sa.String(length=100), nullable=False),
            sa.Column("activo", sa.Boolean(), nullable=False),
            sa.Column("posicion", sa.Integer(), nullable=False),
            sa.Column("fase", sa.String(length=20), nullable=True),
            _pk("pedido_estados"),
            sa.UniqueConstraint("nombre", name=op.f("uq_pedido_estados_nombre")),
            _ck(
                "pedido_estados",
                "fase_valida",
                "fase IS NULL OR fase IN ('pendiente', 'recibido', 'cancelado', 'otro')",
            ),
        )

    if not has_table(bind, "pedidos_suplidores"):
        op.create_table(
            "pedidos_suplidores",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("producto_id", sa.Integer(), nullable=True),
            sa.Column("suplidor_id", sa.Integer(), nullable=False),
            sa.Column("tipo_producto_id", sa.Integer(), nullable=True),
            sa.Column("marca_id", sa.Integer(), nullable=True),
            sa.Column("modelo_id", sa.Integer(), nullable=True),
            sa.Column("nombre_producto", sa.String(length=200), nullable=True),
            sa.Column("cantidad_solicitada", sa.Integer(), nullable=False),
            sa.Column("costo_unitario", sa.Numeric(12, 2), nullable=True),
            sa.Column("fecha_pedido", sa.DateTime(), nullable=False),
            sa.Column("fecha_esperada", sa.Date(), nullable=True),
            sa.Column("fecha_recibido", sa.Date(), nullable=True),
            sa.Column("estado", sa.String(length=100), nullable=False),
            sa.Column("usuario_id", sa.Integer(), nullable=True),
            _pk("pedidos_suplidores"),
            _fk("pedidos_suplidores", "producto_id", "productos", "SET NULL"),
            _fk("pedidos_suplidores", "suplidor_id", "suplidores"),
            _fk("pedidos_suplidores", "tipo_producto_id", "tipos_producto"),
            _fk("pedidos_suplidores", "marca_id", "marcas"),
            _fk("pedidos_suplidores", "modelo_id", "modelos"),
            _fk("pedidos_suplidores", "usuario_id", "users", "SET NULL"),
            _ck("pedidos_suplidores", "cantidad_positiva", "cantidad_solicitada > 0"),
        )

    if not has_table(bind, "salida_estados"):
        op.create_table(
            "salida_estados",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("nombre", sa.String(length=100), nullable=False),
            sa.Column("descripcion", sa.Text(), nullable=True),
            sa.Column("activo", sa.Boolean(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            _pk("salida_estados"),
            sa.UniqueConstraint("nombre", name=op.f("uq_salida_estados_nombre")),
        )

    if not has_table(bind, "salidas_alm"):
        op.create_table(
            "salidas_alm",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("ticket", sa.String(length=40), nullable=False),
            sa.Column("vendedor_id", sa.Integer(), nullable=True),
            sa.Column("fecha_salida", sa.DateTime(), nullable=False),
            sa.Column("fecha_entrega", sa.Date(), nullable=True),
            sa.Column("total", sa.Numeric(12, 2), nullable=False),
            sa.Column("estado", sa.String(length=100), nullable=False),
            sa.Column("tipo_salida", sa.String(length=10), nullable=False),
            sa.Column("tipo_venta", sa.String(length=10), nullable=False),
            _pk("salidas_alm"),
            _fk("salidas_alm", "vendedor_id", "users", "SET NULL"),
            sa.UniqueConstraint("ticket", name=op.f("uq_salidas_alm_ticket")),
            _ck("salidas_alm", "tipo_salida_valido", "tipo_salida IN ('tienda', 'ruta')"),
            _ck("salidas_alm", "tipo_venta_valido", "tipo_venta IN ('contado', 'credito')"),
        )

    if not has_table(bind, "detalle_salidas"):
        op.create_table(
            "detalle_salidas",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("salida_id", sa.Integer(), nullable=False),
            sa.Column("producto_id", sa.Integer(), nullable=False),
            sa.Column("cantidad", sa.Integer(), nullable=False),
            sa.Column("precio_unitario", sa.Numeric(12, 2), nullable=False),
            sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
            _pk("detalle_salidas"),
            _fk("detalle_salidas", "salida_id", "salidas_alm", "CASCADE"),
            _fk("detalle_salidas", "producto_id", "productos"),
            _ck("detalle_salidas", "cantidad_positiva", "cantidad > 0"),
        )

    if not has_table(bind, "movimientos_inv"):
        op.create_table(
            "movimientos_inv",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("producto_id", sa.Integer(), nullable=False),
            sa.Column("tipo", sa.String(length=10), nullable=False),
            sa.Column("motivo", sa.String(length=30), nullable=False),
            sa.Column("cantidad", sa.Integer(), nullable=False),
            sa.Column("stock_anterior", sa.Integer(), nullable=False),
            sa.Column("stock_nuevo", sa.Integer(), nullable=False),
            sa.Column("usuario_id", sa.Integer(), nullable=True),
            sa.Column("observacion", sa.Text(), nullable=True),
            sa.Column("pedido_id", sa.Integer(), nullable=True),
            sa.Column("salida_id", sa.Integer(), nullable=True),
            sa.Column("detalle_salida_id", sa.Integer(), nullable=True),
            sa.Column("fecha_movimiento", sa.DateTime(), nullable=False),
            _pk("movimientos_inv"),
            _fk("movimientos_inv", "producto_id", "productos"),
            _fk("movimientos_inv", "usuario_id", "users", "SET NULL"),
            _fk("movimientos_inv", "pedido_id", "pedidos_suplidores", "SET NULL"),
            _fk("movimientos_inv", "salida_id", "salidas_alm", "SET NULL"),
            _fk("movimientos_inv", "detalle_salida_id", "detalle_salidas", "SET NULL"),
            _ck("movimientos_inv", "tipo_valido", "tipo IN ('entrada', 'salida', 'ajuste')"),
            _ck(
                "movimientos_inv",
                "motivo_valido",
                "motivo IN ('pedido_recibido', 'pedido_revertido', 'salida', 'ajuste_manual', 'stock_inicial')",
            ),
            _ck("movimientos_inv", "cantidad_positiva", "cantidad > 0"),
            _ck("movimientos_inv", "stock_nuevo_no_negativo", "stock_nuevo >= 0"),
        )
        for column in ("producto_id", "pedido_id", "salida_id", "fecha_movimiento"):
            op.create_index(op.f(f"ix_movimientos_inv_{column}"), "movimientos_inv", [column])


def downgrade() -> None:
    for table in (
        "movimientos_inv",
        "detalle_salidas",
        "salidas_alm",
        "salida_estados",
        "pedidos_suplidores",
        "pedido_estados",
        "productos",
        "modelos",
        "marcas",
        "tipos_producto",
        "suplidores",
        "sessions",
        "users",
        "roles",
    ):
        op.drop_table(table)
