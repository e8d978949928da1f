"""Referral graph traversal over the referred_by back-references"""

from typing import Dict, List, Optional, Protocol, Sequence

from compensation_engine.domain.exceptions import GraphCycleError, MemberNotFoundError


class MemberNode(Protocol):
    id: int
    referred_by_id: Optional[int]


class MemberDirectory(Protocol):
    """Read-only member lookups the walker needs"""

    def get_member(self, member_id: int) -> Optional[MemberNode]:
        ...

    def get_referrals_of(self, member_ids: Sequence[int]) -> List[MemberNode]:
        ...


class ReferralGraph:
    """
    Bounded walks over the referral forest.

    Every walk keeps a visited set of member ids so corrupted data (a member
    that is its own ancestor) ends in GraphCycleError instead of looping.
    """

    def __init__(self, directory: MemberDirectory):
        self.directory = directory

    def _require(self, member_id: int) -> MemberNode:
        member = self.directory.get_member(member_id)
        if member is None:
            raise MemberNotFoundError(member_id)
        return member

    def upline_chain(self, member_id: int, max_depth: Optional[int] = 5) -> List[MemberNode]:
        """
        Referrers of a member, nearest first.

        Stops after max_depth hops (None walks to the root) or at a member
        without a referrer.

        Raises:
            MemberNotFoundError: start member or a referenced referrer is missing
            GraphCycleError: a member id reappears on the walk
        """
        current = self._require(member_id)
        path = [current.id]
        visited = {current.id}
        chain: List[MemberNode] = []

        while current.referred_by_id is not None:
            if max_depth is not None and len(chain) >= max_depth:
                break
            parent_id = current.referred_by_id
            if parent_id in visited:
                raise GraphCycleError(member_id, parent_id, path + [parent_id])
            current = self._require(parent_id)
            visited.add(current.id)
            path.append(current.id)
            chain.append(current)

        return chain

    def upline_depth(self, member_id: int, cap: int) -> int:
        """Hops from the member to the end of its chain, capped at `cap`"""
        return len(self.upline_chain(member_id, max_depth=cap))

    def direct_referrals(self, member_id: int) -> List[MemberNode]:
        return self.directory.get_referrals_of([member_id])

    def downline_by_level(self, member_id: int, max_level: Optional[int] = 5) -> Dict[int, List[MemberNode]]:
        """
        Downline grouped by distance, built breadth first.

        Level 1 holds direct referrals, level n the referrals of level n-1.
        Only non-empty levels are returned; max_level=None walks the whole
        downline.
        """
        root = self._require(member_id)
        visited = {root.id}
        frontier: List[int] = [root.id]
        levels: Dict[int, List[MemberNode]] = {}

        level = 0
        while max_level is None or level < max_level:
            level += 1
            members = self.directory.get_referrals_of(frontier)
            if not members:
                break
            for member in members:
                if member.id in visited:
                    raise GraphCycleError(member_id, member.id)
                visited.add(member.id)
            levels[level] = members
            frontier = [m.id for m in members]

        return levels
