"""
Módulo de Facturación (Invoices)

- Facturas de venta con numeración por empresa
- Máquina de estados: draft -> sent -> partially_paid / overdue -> paid, y cancelled
- Registro de pagos serializado por factura (SELECT ... FOR UPDATE)
- Tarea periódica que actualiza vencimientos

Tablas principales:
- invoices: Facturas de venta
- invoice_line_items: Ítems de factura
- payments: Pagos de facturas (solo se agregan)
"""
