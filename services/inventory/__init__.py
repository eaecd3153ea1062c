# NG-HEADER: Nombre de archivo: __init__.py
# NG-HEADER: Ubicación: services/inventory/__init__.py
# NG-HEADER: Descripción: Núcleo transaccional del inventario (libro de stock, pedidos y salidas).
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Núcleo transaccional del inventario.

Los módulos de este paquete no dependen de FastAPI: reciben una
``AsyncSession`` y lanzan errores de ``services.inventory.errors``.
"""
