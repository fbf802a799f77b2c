from .reconciler import CacheProbeReconciler, ProbePhase, ReconcileResult

__all__ = [
    'CacheProbeReconciler',
    'ProbePhase',
    'ReconcileResult',
]
