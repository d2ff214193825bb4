#!/usr/bin/env python
"""
Skill Swap Demo for the SkillSwap Platform

This script walks two users through a full skill swap (request, accept,
complete, rate) against the in-memory store, with colorful formatting.
"""

import asyncio
import shutil

from skillswap.core.config import configure_logging
from skillswap.core.dependencies import Services
from skillswap.core.exceptions import SkillSwapError
from skillswap.core.store import InMemoryStore
from skillswap.schemas.user import UserProfile

# ANSI color codes for terminal output
class Colors:
    HEADER = '\033[95m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'
    BG_BLUE = '\033[44m'
    BG_CYAN = '\033[46m'

# Sample user data
USERS = [
    UserProfile(id="u1001", name="Alex Johnson", skills_offered={"Photoshop", "Illustrator"}, skills_wanted={"Spanish"}),
    UserProfile(id="u1002", name="Jamie Smith", skills_offered={"Spanish", "Guitar"}, skills_wanted={"Photoshop"}),
    UserProfile(id="u1003", name="Taylor Brown", skills_offered={"Python"}, skills_wanted={"Guitar"}),
]

def name_of(user_id):
    return next((u.name for u in USERS if u.id == user_id), user_id)

def print_header(text):
    """Print a formatted header"""
    terminal_width = shutil.get_terminal_size().columns
    print(f"\n{Colors.BG_BLUE}{Colors.BOLD}{text.center(terminal_width)}{Colors.ENDC}")

def print_section(text):
    """Print a formatted section header"""
    print(f"\n{Colors.YELLOW}{Colors.BOLD}=== {text} ==={Colors.ENDC}")

def print_user(user):
    print(f"\n{Colors.CYAN}{Colors.BOLD}👤 {user.name}{Colors.ENDC}")
    print(f"{Colors.GREEN}🎓 Offers:{Colors.ENDC} {', '.join(sorted(user.skills_offered))}")
    print(f"{Colors.GREEN}🔍 Wants:{Colors.ENDC} {', '.join(sorted(user.skills_wanted)) or '-'}")
    print(f"{Colors.GREEN}⭐ Rating:{Colors.ENDC} {user.average_rating:.2f} ({user.total_ratings} ratings, {user.total_swaps} swaps)")

def print_swap(swap):
    status_colors = {
        "pending": Colors.YELLOW,
        "accepted": Colors.BLUE,
        "completed": Colors.GREEN,
        "rejected": Colors.RED,
        "cancelled": Colors.RED,
    }
    print(f"\n{Colors.BG_CYAN}{Colors.BOLD} SWAP {swap.id[:8]} {Colors.ENDC}")
    print(f"{Colors.GREEN}👤 Requester:{Colors.ENDC} {name_of(swap.requester_id)} offers {swap.offered_skill}")
    print(f"{Colors.GREEN}👤 Receiver:{Colors.ENDC} {name_of(swap.receiver_id)} teaches {swap.requested_skill}")
    status_color = status_colors.get(swap.status.value, Colors.BLUE)
    print(f"{Colors.GREEN}📊 Status:{Colors.ENDC} {status_color}{swap.status.value.upper()}{Colors.ENDC}")
    print(f"{Colors.GREEN}⏰ Respond by:{Colors.ENDC} {swap.response_deadline:%Y-%m-%d}")
    if swap.message:
        print(f"{Colors.GREEN}💬 Message:{Colors.ENDC} \"{swap.message}\"")

def print_error(error):
    print(f"{Colors.RED}✗ {error.kind}: {error.detail} (field: {error.field}){Colors.ENDC}")

async def simulate_skill_swap():
    """Simulate the skill swapping process"""
    services = Services(InMemoryStore(USERS))
    alex, jamie, taylor = (u.id for u in USERS)

    print_header(" 🔄 SKILL SWAP DEMONSTRATION 🔄 ")

    print_header(" 👥 REGISTERED USERS 👥 ")
    for user in USERS:
        print_user(user)

    print_header(" 🔄 CREATING A SWAP REQUEST 🔄 ")
    print(f"{Colors.BOLD}Alex wants to learn Spanish from Jamie in exchange for Photoshop{Colors.ENDC}")
    swap = await services.swaps.create_swap(
        alex, jamie, "Spanish", "Photoshop", message="Hola! Happy to share my design skills."
    )
    print(f"\n{Colors.GREEN}✅ Swap request created successfully!{Colors.ENDC}")
    print_swap(swap)

    print_section("Trying the same request twice")
    try:
        await services.swaps.create_swap(alex, jamie, "Spanish", "Photoshop")
    except SkillSwapError as e:
        print_error(e)

    print_section("Taylor asks Jamie for a skill Jamie doesn't offer")
    eligibility = await services.swaps.check_eligibility(taylor, jamie, "Cooking", "Python")
    print(f"{Colors.RED}✗ {eligibility.reason}{Colors.ENDC}")

    print_header(" ✅ ACCEPTING AND COMPLETING ✅ ")
    try:
        await services.swaps.accept(swap.id, alex)
    except SkillSwapError as e:
        print_error(e)
    await services.swaps.accept(swap.id, jamie)
    swap = await services.swaps.complete(swap.id, alex)
    print_swap(swap)

    print_header(" ⭐ RATING THE SWAP ⭐ ")
    await services.ratings.submit_rating(
        swap.id, alex, jamie, 5,
        feedback="Patient and clear explanations",
        categories={"communication": 5, "skill_level": 5, "punctuality": 4},
    )
    await services.ratings.submit_rating(swap.id, jamie, alex, 4, categories={"helpfulness": 4})
    try:
        await services.ratings.submit_rating(swap.id, alex, jamie, 1)
    except SkillSwapError as e:
        print_error(e)

    stats = await services.ratings.get_user_rating_stats(jamie)
    print_section("Jamie's Rating Stats")
    print(f"{Colors.GREEN}Average:{Colors.ENDC} {stats.average_rating} over {stats.total_ratings} ratings")
    print(f"{Colors.GREEN}Categories:{Colors.ENDC} {stats.category_averages.model_dump(exclude_none=True)}")
    print(f"{Colors.GREEN}Recommendation rate:{Colors.ENDC} {stats.recommendation_rate:.0%}")

    print_header(" 📊 REPUTATION SUMMARY 📊 ")
    for user_id in (alex, jamie, taylor):
        print_user(await services.store.get_user(user_id))
        audit = await services.reputation.verify(user_id)
        marker = "✅" if audit.consistent else "⚠️"
        print(f"  {marker} stored reputation matches the rating ledger: {audit.consistent}")

    print_header(" 🎉 SKILL SWAP DEMONSTRATION COMPLETED 🎉 ")

if __name__ == "__main__":
    configure_logging("WARNING")
    try:
        asyncio.run(simulate_skill_swap())
    except KeyboardInterrupt:
        print(f"\n{Colors.RED}Demonstration interrupted by user.{Colors.ENDC}")
