from app.funnels.models import Funnel
from app.media.models import Media
from app.notifications.models import Notification
from app.pipelines.models import Contact, Lane, Pipeline, Tag, Ticket, ticket_tag_table
from app.tenancy.models import Agency, Invitation, Permission, SidebarOption, SubAccount, User

__all__ = [
	"Agency",
	"Contact",
	"Funnel",
	"Invitation",
	"Lane",
	"Media",
	"Notification",
	"Permission",
	"Pipeline",
	"SidebarOption",
	"SubAccount",
	"Tag",
	"Ticket",
	"User",
	"ticket_tag_table",
]
