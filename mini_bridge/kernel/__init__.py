# mini_bridge/kernel - element-agnostic structural analysis core
"""
KERNEL: THE ELEMENT-AGNOSTIC FOUNDATION
=======================================

Assembly and solving don't care which element produced a stiffness
matrix. They need:
- A way to map (node_id, local_dof) -> global DOF index
- Element stiffness matrices in global coordinates
- Prescribed DOF values (supports, imposed displacements)
- Load vectors

Element formulations live in ``mini_bridge.elements``; the kernel
plumbing is shared by every analysis (stages, influence lines).
"""

from .dof import DOFManager, DOF_3D_FRAME, UX, UY, UZ, RX, RY, RZ
from .assemble import assemble_global_K, assemble_global_F
from .solve import solve_linear, factorize, FactoredSystem

__all__ = [
    'DOFManager', 'DOF_3D_FRAME', 'UX', 'UY', 'UZ', 'RX', 'RY', 'RZ',
    'assemble_global_K', 'assemble_global_F',
    'solve_linear', 'factorize', 'FactoredSystem',
]
