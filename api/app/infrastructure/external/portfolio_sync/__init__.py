"""
Pipeline de sincronización incremental: Airtable -> snapshot del portfolio.

Este paquete puede ejecutarse como job (CLI) o bajo demanda desde el endpoint
de sync. En ambos casos hay un único orquestador con un SnapshotStore
intercambiable.

Objetivos de diseño:
- Incremental: detección de cambios por "Last Modified" por tabla.
- Tolerante: tablas opcionales ausentes no rompen la corrida.
- Sin datasets parciales: o snapshot nuevo completo, o el anterior (stale).
- Una sola corrida a la vez (lease con expiración junto al snapshot).
"""
