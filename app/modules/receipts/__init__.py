"""
Recibos de venta POS: ventas de mostrador pagadas en el acto
"""
