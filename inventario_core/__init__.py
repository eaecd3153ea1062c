# NG-HEADER: Nombre de archivo: __init__.py
# NG-HEADER: Ubicación: inventario_core/__init__.py
# NG-HEADER: Descripción: Paquete de configuración central del backend de inventario.
# NG-HEADER: Lineamientos: Ver AGENTS.md
