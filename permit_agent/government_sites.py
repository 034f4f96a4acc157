"""Known permit offices for large US cities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True, frozen=True)
class GovernmentSite:
    city: str
    state: str
    website: str
    permit_url: str
    forms_url: Optional[str]
    phone: str
    email: str
    office_address: str
    notes: str = ""


GOVERNMENT_SITES: tuple[GovernmentSite, ...] = (
    GovernmentSite("San Francisco", "CA", "https://sf.gov", "https://sf.gov/topics/building-permits",
                   "https://sf.gov/forms", "(415) 558-6000", "dbw@sfgov.org",
                   "49 South Van Ness Avenue, San Francisco, CA 94103", "Uses SFGov portal for online applications"),
    GovernmentSite("Los Angeles", "CA", "https://www.ladbss.lacity.org", "https://www.ladbss.lacity.org/permits",
                   "https://www.ladbss.lacity.org/forms", "(213) 482-7000", "ladbs@lacity.org",
                   "201 N Figueroa St, Los Angeles, CA 90012", "LADBS handles all building and safety permits"),
    GovernmentSite("San Diego", "CA", "https://www.sandiego.gov", "https://www.sandiego.gov/development-services",
                   "https://www.sandiego.gov/development-services/permits/forms", "(619) 446-5000", "dsd@sandiego.gov",
                   "1222 First Avenue, San Diego, CA 92101", "Development Services Department"),
    GovernmentSite("New York", "NY", "https://www1.nyc.gov", "https://www1.nyc.gov/site/buildings/business/permits.page",
                   "https://www1.nyc.gov/site/buildings/business/forms.page", "(212) 639-9675",
                   "customerservice@buildings.nyc.gov", "280 Broadway, New York, NY 10007",
                   "NYC Department of Buildings"),
    GovernmentSite("Houston", "TX", "https://www.houston.gov", "https://www.houston.gov/permits",
                   "https://www.houston.gov/permits/forms", "(832) 394-9000", "permits@houstontx.gov",
                   "1002 Washington Avenue, Houston, TX 77002", "Houston Permitting Center"),
    GovernmentSite("Austin", "TX", "https://www.austintexas.gov",
                   "https://www.austintexas.gov/department/development-services",
                   "https://www.austintexas.gov/department/development-services/permits/forms", "(512) 974-2000",
                   "dsd@austintexas.gov", "505 Barton Springs Road, Austin, TX 78704",
                   "Development Services Department"),
    GovernmentSite("Miami", "FL", "https://www.miamigov.com",
                   "https://www.miamigov.com/Government/Departments-Organizations/Planning-Building/Planning-Building-Permits",
                   None, "(305) 250-5400", "building@miamigov.com", "444 SW 2nd Avenue, Miami, FL 33130",
                   "Planning and Building Department"),
    GovernmentSite("Chicago", "IL", "https://www.chicago.gov",
                   "https://www.chicago.gov/city/en/depts/bldgs/provdrs/permits.html",
                   "https://www.chicago.gov/city/en/depts/bldgs/provdrs/permits/forms.html", "(312) 744-5000",
                   "permitcenter@cityofchicago.org", "121 N LaSalle St, Chicago, IL 60602",
                   "Department of Buildings"),
    GovernmentSite("Atlanta", "GA", "https://www.atlantaga.gov",
                   "https://www.atlantaga.gov/government/departments/office-of-buildings/permits", None,
                   "(404) 330-6000", "permits@atlantaga.gov", "55 Trinity Avenue SW, Atlanta, GA 30303",
                   "Office of Buildings"),
    GovernmentSite("Seattle", "WA", "https://www.seattle.gov", "https://www.seattle.gov/sdci/permits",
                   "https://www.seattle.gov/sdci/permits/forms", "(206) 684-8600", "sdci@seattle.gov",
                   "700 5th Avenue, Seattle, WA 98104", "Seattle Department of Construction and Inspections"),
    GovernmentSite("Denver", "CO", "https://www.denvergov.org",
                   "https://www.denvergov.org/Government/Agencies-Departments-Offices/Agencies-Departments-Offices-Directory/Community-Planning-Development/Development-Services/Development-Services-Permits",
                   None, "(720) 865-3000", "development.services@denvergov.org", "201 W Colfax Ave, Denver, CO 80202",
                   "Community Planning and Development"),
    GovernmentSite("Phoenix", "AZ", "https://www.phoenix.gov", "https://www.phoenix.gov/planning/permits",
                   "https://www.phoenix.gov/planning/permits/forms", "(602) 262-6000", "planning@phoenix.gov",
                   "200 W Washington St, Phoenix, AZ 85003", "Planning and Development Department"),
    GovernmentSite("Philadelphia", "PA", "https://www.phila.gov",
                   "https://www.phila.gov/departments/department-of-licenses-and-inspections/permits/", None,
                   "(215) 686-1776", "l&i@phila.gov", "1401 John F Kennedy Blvd, Philadelphia, PA 19102",
                   "Department of Licenses and Inspections"),
    GovernmentSite("Detroit", "MI", "https://detroitmi.gov",
                   "https://detroitmi.gov/departments/buildings-safety-engineering-and-environmental-department", None,
                   "(313) 224-2737", "bsee@detroitmi.gov", "2 Woodward Avenue, Detroit, MI 48226",
                   "Buildings, Safety Engineering and Environmental Department"),
    GovernmentSite("Cleveland", "OH", "https://www.clevelandohio.gov",
                   "https://www.clevelandohio.gov/government/departments/building-housing/permits", None,
                   "(216) 664-2000", "building@clevelandohio.gov", "601 Lakeside Avenue, Cleveland, OH 44114",
                   "Department of Building and Housing"),
    GovernmentSite("Nashville", "TN", "https://www.nashville.gov",
                   "https://www.nashville.gov/departments/codes-administration/permits", None, "(615) 862-6500",
                   "codes@nashville.gov", "800 2nd Avenue South, Nashville, TN 37210",
                   "Department of Codes Administration"),
    GovernmentSite("Portland", "OR", "https://www.portland.gov", "https://www.portland.gov/bds/permits",
                   "https://www.portland.gov/bds/permits/forms", "(503) 823-7300", "bds@portlandoregon.gov",
                   "1900 SW 4th Avenue, Portland, OR 97201", "Bureau of Development Services"),
    GovernmentSite("Las Vegas", "NV", "https://www.lasvegasnevada.gov",
                   "https://www.lasvegasnevada.gov/government/departments/planning/permits", None, "(702) 229-6011",
                   "planning@lasvegasnevada.gov", "495 S Main St, Las Vegas, NV 89101", "Department of Planning"),
    GovernmentSite("Salt Lake City", "UT", "https://www.slc.gov", "https://www.slc.gov/planning/permits/",
                   "https://www.slc.gov/planning/permits/forms/", "(801) 535-6000", "planning@slc.gov",
                   "451 S State St, Salt Lake City, UT 84111", "Planning Division"),
    GovernmentSite("Minneapolis", "MN", "https://www.minneapolismn.gov",
                   "https://www.minneapolismn.gov/government/programs-initiatives/construction-permits/", None,
                   "(612) 673-3000", "permits@minneapolismn.gov", "350 S 5th St, Minneapolis, MN 55415",
                   "Construction Permits Program"),
    GovernmentSite("Milwaukee", "WI", "https://city.milwaukee.gov", "https://city.milwaukee.gov/dns/permits",
                   "https://city.milwaukee.gov/dns/permits/forms", "(414) 286-2000", "dns@milwaukee.gov",
                   "200 E Wells St, Milwaukee, WI 53202", "Department of Neighborhood Services"),
    GovernmentSite("Kansas City", "MO", "https://www.kcmo.gov",
                   "https://www.kcmo.gov/government/departments/planning-development/permits", None,
                   "(816) 513-1000", "planning@kcmo.org", "414 E 12th St, Kansas City, MO 64106",
                   "Planning and Development Department"),
)


def find_government_site(city: str, state: str) -> GovernmentSite | None:
    wanted = (city.strip().lower(), state.strip().lower())
    for site in GOVERNMENT_SITES:
        if (site.city.lower(), site.state.lower()) == wanted:
            return site
    return None


def search_government_sites(query: str) -> list[GovernmentSite]:
    needle = query.strip().lower()
    if not needle:
        return []
    return [
        site
        for site in GOVERNMENT_SITES
        if needle in site.city.lower() or needle == site.state.lower() or needle in site.website.lower()
    ]
