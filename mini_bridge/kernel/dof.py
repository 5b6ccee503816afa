# mini_bridge/kernel/dof.py
"""
DOF MANAGER: Degree of Freedom Indexing
=======================================

PURPOSE:
--------
Maps (node_id, local_dof) to a global DOF index. Every node of a bridge
line model carries six DOFs:

    0: ux   translation along the bridge
    1: uy   transverse translation
    2: uz   vertical translation (up positive)
    3: rx   rotation about x (torsion)
    4: ry   rotation about y (vertical bending)
    5: rz   rotation about z (lateral bending)

Assembly, load vectors and the solver only ever see global indices, so
they stay element-type agnostic.

USAGE:
------
    dof = DOFManager()
    dof.idx(node_id=2, local_dof=UZ)   # -> 14
    dof.element_dof_map([0, 1])        # -> [0, 1, ..., 11]
"""

from dataclasses import dataclass
from typing import List

UX, UY, UZ, RX, RY, RZ = range(6)

DOF_NAMES = ('ux', 'uy', 'uz', 'rx', 'ry', 'rz')


@dataclass(frozen=True)
class DOFManager:
    """
    Manages degree-of-freedom indexing for structural analysis.

    Node ids must be contiguous from 0 so that ``dof_per_node * node_id``
    is a valid row of the global matrices.

    Examples:
    ---------
    >>> dof = DOFManager()
    >>> dof.idx(1, UZ)
    8
    >>> dof.ndof(4)
    24
    """
    dof_per_node: int = 6

    def idx(self, node_id: int, local_dof: int) -> int:
        """Global DOF index of a node's local DOF."""
        return self.dof_per_node * node_id + local_dof

    def ndof(self, n_nodes: int) -> int:
        """Total number of DOFs (size of K) for n_nodes."""
        return self.dof_per_node * n_nodes

    def node_dofs(self, node_id: int) -> List[int]:
        """
        All global DOF indices of one node.

        >>> DOFManager().node_dofs(2)
        [12, 13, 14, 15, 16, 17]
        """
        base = self.dof_per_node * node_id
        return list(range(base, base + self.dof_per_node))

    def element_dof_map(self, node_ids: List[int]) -> List[int]:
        """
        Flattened DOF map for an element connecting ``node_ids``.

        This is the index list used to scatter element matrices into (and
        gather element displacements from) the global arrays.
        """
        result = []
        for node_id in node_ids:
            result.extend(self.node_dofs(node_id))
        return result

    def split(self, global_dof: int) -> tuple:
        """Inverse of idx: global index -> (node_id, local_dof)."""
        return divmod(global_dof, self.dof_per_node)


DOF_3D_FRAME = DOFManager(dof_per_node=6)
